"""Allow running the sniper with ``python -m poolsniper``"""

import sys

from poolsniper.app import main


sys.exit(main())
