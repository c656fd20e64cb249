import sys

from pricepath.cli import main


if __name__ == "__main__":
    sys.exit(main())
