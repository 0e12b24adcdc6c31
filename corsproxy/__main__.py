import sys

from corsproxy.cli import main

sys.exit(main())
