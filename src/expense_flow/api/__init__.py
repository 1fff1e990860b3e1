"""HTTP clients for the expense backend and receipt storage."""
