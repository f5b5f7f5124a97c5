import sys

from querybench.cli import main

sys.exit(main())
