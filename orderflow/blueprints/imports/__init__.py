"""
Imports (WooCommerce lookup) blueprint package.

This file just exposes the Blueprint object to be imported in orderflow.__init__.
The actual routes and logic are in routes.py.
"""

from .routes import imports_bp  # noqa: F401
