"""Retry, circuit breaking and spreadsheet date normalization for the ERP front end."""

__version__ = "1.0.0"
