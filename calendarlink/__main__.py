"""Entry point for ``python -m calendarlink``."""

import sys

from calendarlink.cli import main

if __name__ == "__main__":
    sys.exit(main())
