"""Data reconciliation for recruiting back-office records."""

__version__ = "0.1.0"
