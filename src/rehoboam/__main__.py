"""Entry point for the rehoboam package."""

import sys

from rehoboam.main import main

if __name__ == "__main__":
    sys.exit(main())
