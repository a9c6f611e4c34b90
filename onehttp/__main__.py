import sys

from onehttp.cli import main

sys.exit(main())
