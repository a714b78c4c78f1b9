"""Terminal client for the outreach queue"""

from outreach_queue.cli.client import QueueCLI
from outreach_queue.cli.ui import TerminalUI

__all__ = ["QueueCLI", "TerminalUI"]
