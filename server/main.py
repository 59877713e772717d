"""
Main entry point for the Farkle server.

Usage:
    python -m server.main

Or:
    farkle-server --port 8765
"""

from server.network.server import main


if __name__ == "__main__":
    main()
