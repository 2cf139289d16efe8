import sys

from sameorigin.main import main

sys.exit(main())
