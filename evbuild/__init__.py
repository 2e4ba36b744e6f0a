"""evbuild: content-addressed build versioning for multi-repo workspaces."""

__version__ = "0.3.0"
