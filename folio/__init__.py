"""folio: static site toolkit for a portfolio and technical blog."""

__version__ = "0.3.0"
