import sys

from step.main import main

sys.exit(main())
