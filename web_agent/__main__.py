"""
Entry point for running as a module.

Usage: python -m web_agent run PLAN.json --url https://example.com
"""

import sys
from .cli import main

if __name__ == "__main__":
    sys.exit(main())
