"""Core configuration, database, observability and HTTP plumbing."""
