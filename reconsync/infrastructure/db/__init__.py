from .config import DEFAULT_DB_TIMEOUT, default_db_path, get_default_timeout
from .connection import DatabaseError, apply_pragmas, get_connection, iso_utcnow
from .schema import SchemaMigrator, ensure_schema

__all__ = [
    "DEFAULT_DB_TIMEOUT",
    "DatabaseError",
    "apply_pragmas",
    "default_db_path",
    "get_connection",
    "get_default_timeout",
    "iso_utcnow",
    "SchemaMigrator",
    "ensure_schema",
]
