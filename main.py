"""
Main entrypoint: query API + block poller. See solana_indexer.main.

Usage: python main.py [--ingest-only]
"""

import sys

from solana_indexer.main import main

if __name__ == "__main__":
    sys.exit(main())
