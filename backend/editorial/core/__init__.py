"""Core infrastructure: configuration, database, logging and errors."""
