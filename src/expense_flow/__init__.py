"""expense-flow: expense claim validation, approval lifecycle and API client."""

__version__ = "0.1.0"
