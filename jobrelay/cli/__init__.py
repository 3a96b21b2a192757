"""Command-line interface package for jobrelay.

The function :func:`main` is exposed as a package attribute
(``from jobrelay.cli import main``).  The implementation lives in
:mod:`jobrelay.cli.main`; importing it eagerly here rebinds the package
attribute ``main`` to the function rather than the submodule.
"""

from .main import main

__all__ = ["main"]
