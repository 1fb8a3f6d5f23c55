"""filedeck: web file manager backend."""

__version__ = "0.3.0"
