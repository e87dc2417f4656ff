"""Archive, search and retrieve saved Claude Code conversations."""

__version__ = "0.1.0"
