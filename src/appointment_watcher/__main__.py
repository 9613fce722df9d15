import sys

from appointment_watcher.cli import main

sys.exit(main())
