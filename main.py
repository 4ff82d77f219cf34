import sys

from TinyShell.shell import main

if __name__ == "__main__":
    sys.exit(main())
