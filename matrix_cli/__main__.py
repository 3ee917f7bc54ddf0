"""
Allow the matrix_cli package to be executed as a module.

This enables running the client with:
    python -m matrix_cli --help
    python -m matrix_cli room join "#general:example.org"
"""

import sys

from matrix_cli.main import main

if __name__ == "__main__":
    sys.exit(main())
