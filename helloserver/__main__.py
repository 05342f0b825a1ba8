import sys

from helloserver.main import main

if __name__ == "__main__":
    sys.exit(main())
