"""
Package entry point.

Allows running the application via:

    python -m coursedesk

This simply forwards execution to coursedesk.cli.main().
"""

from coursedesk.cli import main

if __name__ == "__main__":
    main()
