from outreach_queue.cli.client import main

main()
