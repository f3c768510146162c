"""Core storage, configuration and error types."""
