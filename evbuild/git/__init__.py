"""Git access for unit repositories."""

from evbuild.git.fingerprint import ContentFingerprinter, MainRefCache
from evbuild.git.runner import GitRunner

__all__ = ["ContentFingerprinter", "GitRunner", "MainRefCache"]
