"""Database exceptions."""


class DatabaseError(Exception):
    """Base exception for database failures."""
    pass


class DatabaseSchemaError(DatabaseError):
    """Raised when schema loading or migration fails."""
    pass
