import sys

from nfsstatelink.cli import main

sys.exit(main())
