"""
Entry point for running memfit as a module.

This allows running the CLI with: python -m memfit
"""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
