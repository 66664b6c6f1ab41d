"""WikiKeeper: MediaWiki site tracking and archive.org reconciliation."""

__version__ = "0.2.0"
