"""
Base classes for the index benchmark harness
"""

import abc
import re
import time
import logging
from typing import Dict, Any, Iterable

# Identifiers interpolated into SQL must match this before they are quoted
IDENTIFIER_PATTERN = re.compile(r'^[A-Za-z_][A-Za-z0-9_]{0,63}$')

TOKEN_COLUMNS = (
    'id',
    'user_id',
    'client_id',
    'access_token',
    'token_type',
    'refresh_token',
    'issued_at',
    'revoked_at',
    'expires_at',
    'refresh_token_expires_at',
)


class HarnessError(Exception):
    """Base error for harness operations, carrying the failing operation name"""

    def __init__(self, operation: str, message: str):
        super().__init__(f"{operation}: {message}")
        self.operation = operation
        self.message = message


class ConnectivityError(HarnessError):
    """The store could not be reached; fatal for the whole run"""


class LoadError(HarnessError):
    """A bulk load aborted part way through.

    `inserted` counts rows sent to the store, `committed` the rows that
    survived the rollback.
    """

    def __init__(self, operation: str, message: str, batch: int = 0, inserted: int = 0,
                 committed: int = 0):
        super().__init__(operation, message)
        self.batch = batch
        self.inserted = inserted
        self.committed = committed


class IdentifierError(ValueError):
    """An identifier failed allow-list validation"""


def validate_identifier(name: str, kind: str = 'identifier', allowed: Iterable[str] = None) -> str:
    """Check a table, index or column name before it is interpolated into SQL.

    Raises IdentifierError if the name is not a plain identifier or, when an
    allow-list is given, is not part of it.
    """
    if not isinstance(name, str) or not IDENTIFIER_PATTERN.match(name):
        raise IdentifierError(f"Invalid {kind} name: {name!r}")
    if allowed is not None and name not in allowed:
        raise IdentifierError(f"Unknown {kind} {name!r}; expected one of {sorted(allowed)}")
    return name


def quote_identifier(name: str, kind: str = 'identifier', allowed: Iterable[str] = None) -> str:
    """Validate and backtick-quote an identifier"""
    return f"`{validate_identifier(name, kind, allowed)}`"


def mysql_errno(error: Exception) -> int:
    """Return the server error number of a connector error, or 0"""
    return getattr(error, 'errno', None) or 0


class BaseModule(abc.ABC):
    """Base class for all harness modules sharing one store connection"""

    def __init__(self, config: Dict[str, Any], connection=None):
        self.config = config
        self.connection = connection
        self.logger = logging.getLogger(self.__class__.__name__)

    def get_current_time(self) -> float:
        """Get current timestamp"""
        return time.time()

    def _execute(self, sql: str, params=None, dictionary: bool = False):
        """Run a statement and return all rows it produced (empty for DDL)"""
        cursor = self.connection.cursor(dictionary=dictionary)
        try:
            cursor.execute(sql, params or ())
            if cursor.with_rows:
                return cursor.fetchall()
            return []
        finally:
            cursor.close()
