import sys

from setzkasten.cli import main

sys.exit(main())
