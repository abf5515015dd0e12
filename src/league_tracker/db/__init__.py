"""Database session, transaction and time helpers."""
