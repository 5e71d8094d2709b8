"""Folio: long-document generation and pagination service."""

__version__ = "0.1.0"
