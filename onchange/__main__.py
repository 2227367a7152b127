"""Allow ``python -m onchange``."""

import sys

from onchange.cli import main

sys.exit(main())
