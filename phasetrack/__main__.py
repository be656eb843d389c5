"""Allow `python -m phasetrack`."""

import sys

from .cli import main

sys.exit(main())
