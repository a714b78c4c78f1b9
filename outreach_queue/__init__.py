"""Paced outreach queue with tracker reconciliation."""

__version__ = "0.1.0"
