import sys

from bookstore.runner import main

sys.exit(main())
