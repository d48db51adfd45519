"""Allow ``python -m crew_directory``."""

import sys

from crew_directory.cli import main

sys.exit(main())
