"""Allow ``python -m urlshare``."""

from urlshare.cli import main


if __name__ == "__main__":
    main()
