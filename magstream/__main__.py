"""Allow ``python -m magstream``."""

from magstream.cli.main import main

if __name__ == "__main__":
    main()
