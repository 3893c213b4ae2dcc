import sys

from procwatch.main import main

sys.exit(main())
