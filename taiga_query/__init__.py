"""
Taiga Query Engine Package.

A small query language, parser and async execution engine for filtering,
sorting, grouping and limiting Taiga issues, user stories and tasks.
"""

from .client import TaigaClient
from .config import Settings, configure_logging, load_settings
from .engine import QueryExecutor
from .exceptions import (
    QueryError,
    QueryExecutionError,
    QuerySyntaxError,
    TaigaAPIError,
)
from .help import get_query_help
from .models import (
    EntityType,
    FilterClause,
    GroupedRecords,
    Logic,
    OrderBy,
    QuerySpec,
    QueryStats,
    ResultSet,
    SortDirection,
)
from .parser import get_query_stats, parse_query, resolve_entity_type
from .service import QueryService
from .sources import InMemoryRecordSource, RecordSource

__all__ = [
    'EntityType',
    'FilterClause',
    'GroupedRecords',
    'InMemoryRecordSource',
    'Logic',
    'OrderBy',
    'QueryError',
    'QueryExecutionError',
    'QueryExecutor',
    'QueryService',
    'QuerySpec',
    'QueryStats',
    'QuerySyntaxError',
    'RecordSource',
    'ResultSet',
    'Settings',
    'SortDirection',
    'TaigaAPIError',
    'TaigaClient',
    'configure_logging',
    'get_query_help',
    'get_query_stats',
    'load_settings',
    'parse_query',
    'resolve_entity_type',
]
