"""Entry point for ``python -m tsgraph``; see :mod:`tsgraph.main`."""

from tsgraph.main import main

if __name__ == "__main__":
    raise SystemExit(main())
