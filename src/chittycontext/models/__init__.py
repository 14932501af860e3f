"""Context entities and SQL schema."""
