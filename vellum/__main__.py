"""Entry point for the Vellum CLI when run as ``python -m vellum``."""

from .cli import main

if __name__ == "__main__":  # pragma: no cover
    main()
