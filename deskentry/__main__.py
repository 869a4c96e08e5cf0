import sys

from deskentry.cli import main

sys.exit(main())
