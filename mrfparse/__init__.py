"""Download, decompress, search and export machine-readable price files."""

__version__ = "0.1.0"
__all__ = ["__version__"]