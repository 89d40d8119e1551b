import sys

from pyder.cli import main

sys.exit(main())
