"""Allow ``python -m splitrun``."""

from __future__ import annotations

import sys

from splitrun.cli import main


if __name__ == '__main__':
    sys.exit(main())
