"""Allow ``python -m gtd``."""

import sys

from gtd.cli import main

sys.exit(main())
