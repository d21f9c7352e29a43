"""Allow ``python -m goerrcheck``."""

from goerrcheck.main import main

if __name__ == "__main__":
    raise SystemExit(main())
