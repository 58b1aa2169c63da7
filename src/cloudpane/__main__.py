"""Allow ``python -m cloudpane``."""

from cloudpane.cli.main import main

if __name__ == "__main__":
    main()
