"""Infrastructure adapters: remote HTTP access, sqlite storage, observability."""
