"""Allow `python -m sealchain`."""

import sys

from .cli import main

sys.exit(main())
