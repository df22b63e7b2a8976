"""ctxsync — document synchronization and progressive context loading."""

from ctxsync.version import __version__

__all__ = ["__version__"]
