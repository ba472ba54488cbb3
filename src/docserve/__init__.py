"""docserve: documentation server for remote packages and source-control checkouts."""

__version__ = "0.1.0"
