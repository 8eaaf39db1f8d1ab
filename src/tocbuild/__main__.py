"""Allow ``python -m tocbuild``."""

from tocbuild.cli import main

if __name__ == "__main__":
    main()
