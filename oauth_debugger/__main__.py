"""Entry point: ``python -m oauth_debugger``."""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
