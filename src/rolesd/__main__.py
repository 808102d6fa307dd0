import sys

from rolesd.cli import main

sys.exit(main())
