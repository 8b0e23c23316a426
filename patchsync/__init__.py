"""
patchsync keeps a local directory tree in sync with a remote manifest.
"""

__version__ = "1.0.0"
