"""Allow ``python -m jobrelay``."""

from jobrelay.cli.main import main

if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
