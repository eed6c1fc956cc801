"""Allow ``python -m src.cli`` execution."""

import sys

from src.cli.citebase import main

sys.exit(main())
