"""
uchain module entry point.

Allows running as: python -m uchain run --start 1.5 0.1
"""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
