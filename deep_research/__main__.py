import sys

from deep_research.cli import main

sys.exit(main())
