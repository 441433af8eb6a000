"""Entry point for python -m envtag_bridge."""

import sys

from envtag_bridge.cli import main

if __name__ == "__main__":
    sys.exit(main())
