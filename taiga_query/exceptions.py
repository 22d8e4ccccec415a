"""
Custom exceptions for the Taiga query engine.

Error codes:
- TQ000: Base/unknown error
- TQ001: Query syntax or validation failure (raised before any network access)
- TQ002: Query execution failure
- TQ003: Taiga API failure
"""

from typing import Optional


class QueryError(Exception):
    """Base exception for query engine errors."""
    error_code = 'TQ000'


class QuerySyntaxError(QueryError):
    """Raised when a query string cannot be parsed or validated.

    Attributes:
        fragment: The offending substring of the query, if known
        position: Zero-based offset of the fragment in the query, if known
    """
    error_code = 'TQ001'

    def __init__(
        self,
        message: str,
        fragment: Optional[str] = None,
        position: Optional[int] = None,
    ):
        self.message = message
        self.fragment = fragment
        self.position = position
        super().__init__(self._format())

    def _format(self) -> str:
        if self.fragment is None:
            return self.message
        if self.position is None:
            return f"{self.message} (near '{self.fragment}')"
        return f"{self.message} (near '{self.fragment}' at position {self.position})"


class QueryExecutionError(QueryError):
    """Raised when executing a parsed query fails."""
    error_code = 'TQ002'


class TaigaAPIError(QueryError):
    """Raised when the Taiga API rejects a request or cannot be reached."""
    error_code = 'TQ003'

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)
