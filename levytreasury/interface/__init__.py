"""Mini README: Operator interfaces for the levy treasury.

Exports the FastAPI application factory. The Typer CLI lives in
``main_treasury_desk.py`` at the repository root.
"""

from .web_app import create_application

__all__ = ["create_application"]
