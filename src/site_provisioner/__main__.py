import sys

from site_provisioner.cli import main

sys.exit(main())
