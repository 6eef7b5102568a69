"""Command engine and link-database synchronization for INSTEON HTTP hubs."""

__version__ = "0.4.0"
