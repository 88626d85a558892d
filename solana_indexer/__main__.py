"""python -m solana_indexer [--ingest-only]"""

import sys

from solana_indexer.main import main

sys.exit(main())
