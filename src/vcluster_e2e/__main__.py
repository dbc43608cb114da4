import sys

from vcluster_e2e.cli import main

sys.exit(main())
