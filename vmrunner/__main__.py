"""Module entrypoint: ``python -m vmrunner``."""

from vmrunner.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
