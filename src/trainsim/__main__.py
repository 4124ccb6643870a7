import sys

from trainsim.cli import main

sys.exit(main())
