"""Allow `python -m linkedin_ads`."""

import sys

from linkedin_ads.run_cli import main

sys.exit(main())
