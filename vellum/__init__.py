"""Vellum content site generator.

Vellum scaffolds a site, serves it locally and builds its static assets:
the site's scripts and stylesheets, plus those of the bundled dashboard.

The main entry point is the CLI module. The asset build itself lives in
``vellum.pipeline``, which wires together path resolution, the entry set,
the stylesheet transform chain, output planning and orphan artifact cleanup.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
