"""Allow running as ``python -m tmod_extract``."""

import sys

from .unpacker.cli import main

sys.exit(main())
