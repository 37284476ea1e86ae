"""Allow running the daemon with `python -m voicenote`."""

import sys

from voicenote.cli.daemon import main

sys.exit(main())
