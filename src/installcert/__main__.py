import sys

from installcert.service import main

sys.exit(main())
