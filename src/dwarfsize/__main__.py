import sys

from dwarfsize.cli import main

sys.exit(main())
