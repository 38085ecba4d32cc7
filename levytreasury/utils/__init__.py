"""Mini README: Utility helpers for the levy treasury.

Currently exports the entry point loader used for wallet provider plugins.
"""

from .plugin_loader import load_entry_point_plugins

__all__ = ["load_entry_point_plugins"]
