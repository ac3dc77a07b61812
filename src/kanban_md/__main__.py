import sys

from kanban_md.interfaces.cli import main

sys.exit(main())
