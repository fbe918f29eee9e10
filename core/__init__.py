"""Core runtime helpers: logging and error types."""
