"""
Data models for the Taiga query engine.

Defines the parsed query specification handed from the parser to the
executor, the result set returned by execution, and query statistics.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


Record = Dict[str, Any]


class EntityType(str, Enum):
    """Kind of Taiga record a query runs against."""
    ISSUE = 'ISSUE'
    USER_STORY = 'USER_STORY'
    TASK = 'TASK'


class Logic(str, Enum):
    """Logical combination applied across all top-level filters."""
    AND = 'AND'
    OR = 'OR'


class SortDirection(str, Enum):
    ASC = 'ASC'
    DESC = 'DESC'


@dataclass(frozen=True)
class FilterClause:
    """A single field condition.

    Attributes:
        field: Canonical field name (aliases already resolved)
        operator: Catalogue operator, including negation variants
        value: Primitive, tuple of primitives for list operators,
            or None for valueless operators
    """
    field: str
    operator: str
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert clause to dictionary."""
        value = list(self.value) if isinstance(self.value, tuple) else self.value
        return {'field': self.field, 'operator': self.operator, 'value': value}


@dataclass(frozen=True)
class OrderBy:
    field: str
    direction: SortDirection = SortDirection.ASC

    def to_dict(self) -> Dict[str, Any]:
        return {'field': self.field, 'direction': self.direction.value}


@dataclass(frozen=True)
class QuerySpec:
    """Parsed, validated representation of a query string.

    Attributes:
        entity_type: Record kind the query targets
        filters: Filter clauses in the order they were written
        logic: AND/OR applied uniformly across the filters
        order_by: Optional sort key and direction
        limit: Optional positive cap on the result count
        group_by: Optional field to group results by
        text: The original query string
    """
    entity_type: EntityType
    filters: Tuple[FilterClause, ...] = ()
    logic: Logic = Logic.AND
    order_by: Optional[OrderBy] = None
    limit: Optional[int] = None
    group_by: Optional[str] = None
    text: str = ''

    def to_dict(self) -> Dict[str, Any]:
        """Convert query specification to dictionary."""
        return {
            'entity_type': self.entity_type.value,
            'filters': [clause.to_dict() for clause in self.filters],
            'logic': self.logic.value,
            'order_by': self.order_by.to_dict() if self.order_by else None,
            'limit': self.limit,
            'group_by': self.group_by,
            'text': self.text,
        }


@dataclass
class GroupedRecords:
    """One bucket of a grouped result."""
    group_value: str
    count: int
    items: List[Record] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'group_value': self.group_value, 'count': self.count, 'items': self.items}


@dataclass
class ResultSet:
    """Result of executing a query.

    Attributes:
        results: Matching records, or groups when the query has GROUP BY
        total: Number of entries in results
        query: The executed query specification
        executed_at: UTC time the execution started
        execution_time_ms: Wall-clock execution time in milliseconds
        total_fetched: Number of records fetched from the source
        total_matched: Number of records that passed the filters
    """
    results: List[Union[Record, GroupedRecords]]
    total: int
    query: QuerySpec
    executed_at: datetime
    execution_time_ms: float
    total_fetched: int = 0
    total_matched: int = 0

    @property
    def grouped(self) -> bool:
        return self.query.group_by is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert result set to dictionary."""
        return {
            'results': [
                item.to_dict() if isinstance(item, GroupedRecords) else item
                for item in self.results
            ],
            'total': self.total,
            'grouped': self.grouped,
            'query': self.query.to_dict(),
            'executed_at': self.executed_at.isoformat(),
            'execution_time_ms': self.execution_time_ms,
            'total_fetched': self.total_fetched,
            'total_matched': self.total_matched,
        }


@dataclass
class QueryStats:
    """Summary statistics of a parsed query."""
    filter_count: int
    logic: Logic
    has_order_by: bool
    has_limit: bool
    has_group_by: bool
    complexity: float
    fields: List[str] = field(default_factory=list)
    operators: Dict[str, int] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    exceeds_max_complexity: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'filter_count': self.filter_count,
            'logic': self.logic.value,
            'has_order_by': self.has_order_by,
            'has_limit': self.has_limit,
            'has_group_by': self.has_group_by,
            'complexity': self.complexity,
            'fields': list(self.fields),
            'operators': dict(self.operators),
            'warnings': list(self.warnings),
            'exceeds_max_complexity': self.exceeds_max_complexity,
        }
