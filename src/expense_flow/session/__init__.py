"""Session and identity handling."""
