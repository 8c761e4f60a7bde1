import sys

from lhex.modules.lhex_cli import main

sys.exit(main())
