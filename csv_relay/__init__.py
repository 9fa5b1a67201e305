"""csv-relay: validate the first bytes of an uploaded CSV and stream it back."""

__version__ = "0.1.0"
