from typing import Optional


class PgMaskError(Exception):
    """Base class for every error raised by pg_mask."""


class ConfigurationError(PgMaskError):
    """Invalid or missing settings, or an invalid table description."""


class GeneratorRequiredError(PgMaskError):
    """A rule asks for generated values but no generator is configured."""


class DatabaseOperationError(PgMaskError):
    """A SELECT, UPDATE, INSERT or DDL statement has failed."""

    def __init__(self, message: str, statement: Optional[str] = None):
        super().__init__(message)
        self.statement = statement


class SchemaMismatchError(PgMaskError):
    """Expected table or foreign key metadata is missing."""
