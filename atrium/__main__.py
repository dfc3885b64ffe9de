"""Entry point for ``python -m atrium``."""

from .cli import main

if __name__ == "__main__":  # pragma: no cover
    main()
