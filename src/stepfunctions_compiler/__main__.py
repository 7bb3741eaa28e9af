"""
Entry point for the stepfunctions_compiler package.

This allows the package to be executed as:
    python -m stepfunctions_compiler package --config serverless.yml
"""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
