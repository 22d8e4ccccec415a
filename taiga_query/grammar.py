"""
Query grammar catalogue.

Static tables for the query language: per-entity field types, field
aliases, operators and their aliases, negation variants, operator/field-type
compatibility, logical and clause keywords, relative time vocabulary, and
per-field special values. Consulted by both the parser and the executor.
"""

import re
from typing import Dict, FrozenSet

from .models import EntityType


# Field types
STRING = 'string'
ENUM = 'enum'
NUMBER = 'number'
DATE = 'date'
BOOLEAN = 'boolean'
ARRAY = 'array'

ALL_TYPES: FrozenSet[str] = frozenset({STRING, ENUM, NUMBER, DATE, BOOLEAN, ARRAY})

_COMMON_FIELDS: Dict[str, str] = {
    'subject': STRING,
    'description': STRING,
    'status': ENUM,
    'assignee': STRING,
    'owner': STRING,
    'tags': ARRAY,
    'created': DATE,
    'updated': DATE,
    'closed': BOOLEAN,
    'due_date': DATE,
    'finish_date': DATE,
    'blocked': BOOLEAN,
    'milestone': STRING,
    'attachments': NUMBER,
    'comments': NUMBER,
    'ref': NUMBER,
}

FIELD_TYPES: Dict[EntityType, Dict[str, str]] = {
    EntityType.ISSUE: {
        **_COMMON_FIELDS,
        'priority': ENUM,
        'type': ENUM,
        'severity': ENUM,
        'reporter': STRING,
    },
    EntityType.USER_STORY: {
        **_COMMON_FIELDS,
        'points': NUMBER,
        'priority': ENUM,
        'epic': STRING,
    },
    EntityType.TASK: {
        **_COMMON_FIELDS,
        'user_story': STRING,
    },
}

FIELD_ALIASES: Dict[str, str] = {
    'sprint': 'milestone',
    'assigned': 'assignee',
    'created_by': 'owner',
    'is_blocked': 'blocked',
    'is_closed': 'closed',
    'has_attachments': 'attachments',
}


# Operators
EQUAL = '='
NOT_EQUAL = '!='
GREATER_THAN = '>'
GREATER_EQUAL = '>='
LESS_THAN = '<'
LESS_EQUAL = '<='
CONTAINS = 'contains'
STARTS_WITH = 'startswith'
ENDS_WITH = 'endswith'
FUZZY = '~'
IN = 'in'
NOT_IN = 'not_in'
BETWEEN = 'between'
EXISTS = 'exists'
NULL = 'null'
EMPTY = 'empty'
NOT_EMPTY = 'notempty'

# Negation variants without a natural complement in the base set
NOT_CONTAINS = 'not_contains'
NOT_STARTS_WITH = 'not_startswith'
NOT_ENDS_WITH = 'not_endswith'
NOT_FUZZY = '!~'
NOT_BETWEEN = 'not_between'
NOT_GREATER_THAN = 'not_gt'
NOT_GREATER_EQUAL = 'not_gte'
NOT_LESS_THAN = 'not_lt'
NOT_LESS_EQUAL = 'not_lte'

SYMBOL_OPERATORS: FrozenSet[str] = frozenset({
    EQUAL, NOT_EQUAL, GREATER_THAN, GREATER_EQUAL, LESS_THAN, LESS_EQUAL,
    FUZZY, NOT_FUZZY,
})

# Characters that may form a symbolic operator
SYMBOL_CHARS = '<>=!~'

# Textual operator spellings -> canonical operator
NAMED_OPERATORS: Dict[str, str] = {
    'contains': CONTAINS,
    'not_contains': NOT_CONTAINS,
    'startswith': STARTS_WITH,
    'starts_with': STARTS_WITH,
    'starts': STARTS_WITH,
    'not_startswith': NOT_STARTS_WITH,
    'endswith': ENDS_WITH,
    'ends_with': ENDS_WITH,
    'ends': ENDS_WITH,
    'not_endswith': NOT_ENDS_WITH,
    'fuzzy': FUZZY,
    'in': IN,
    'not_in': NOT_IN,
    'notin': NOT_IN,
    'between': BETWEEN,
    'not_between': NOT_BETWEEN,
    'exists': EXISTS,
    'null': NULL,
    'empty': EMPTY,
    'is_empty': EMPTY,
    'notempty': NOT_EMPTY,
    'not_empty': NOT_EMPTY,
}

VALUELESS_OPERATORS: FrozenSet[str] = frozenset({EXISTS, NULL, EMPTY, NOT_EMPTY})

LIST_OPERATORS: FrozenSet[str] = frozenset({IN, NOT_IN, BETWEEN, NOT_BETWEEN})

RANGE_OPERATORS: FrozenSet[str] = frozenset({BETWEEN, NOT_BETWEEN})

ORDERING_OPERATORS: FrozenSet[str] = frozenset({
    GREATER_THAN, GREATER_EQUAL, LESS_THAN, LESS_EQUAL,
    NOT_GREATER_THAN, NOT_GREATER_EQUAL, NOT_LESS_THAN, NOT_LESS_EQUAL,
})

TEXT_OPERATORS: FrozenSet[str] = frozenset({
    CONTAINS, STARTS_WITH, ENDS_WITH, FUZZY,
    NOT_CONTAINS, NOT_STARTS_WITH, NOT_ENDS_WITH, NOT_FUZZY,
})

# Operator produced by a leading NOT
NEGATIONS: Dict[str, str] = {
    EQUAL: NOT_EQUAL,
    NOT_EQUAL: EQUAL,
    IN: NOT_IN,
    NOT_IN: IN,
    EXISTS: NULL,
    NULL: EXISTS,
    EMPTY: NOT_EMPTY,
    NOT_EMPTY: EMPTY,
    CONTAINS: NOT_CONTAINS,
    NOT_CONTAINS: CONTAINS,
    STARTS_WITH: NOT_STARTS_WITH,
    NOT_STARTS_WITH: STARTS_WITH,
    ENDS_WITH: NOT_ENDS_WITH,
    NOT_ENDS_WITH: ENDS_WITH,
    FUZZY: NOT_FUZZY,
    NOT_FUZZY: FUZZY,
    BETWEEN: NOT_BETWEEN,
    NOT_BETWEEN: BETWEEN,
    GREATER_THAN: NOT_GREATER_THAN,
    NOT_GREATER_THAN: GREATER_THAN,
    GREATER_EQUAL: NOT_GREATER_EQUAL,
    NOT_GREATER_EQUAL: GREATER_EQUAL,
    LESS_THAN: NOT_LESS_THAN,
    NOT_LESS_THAN: LESS_THAN,
    LESS_EQUAL: NOT_LESS_EQUAL,
    NOT_LESS_EQUAL: LESS_EQUAL,
}

OPERATORS: FrozenSet[str] = frozenset(NEGATIONS)

_ORDERABLE = frozenset({NUMBER, DATE, STRING, ENUM})
_TEXTUAL = frozenset({STRING, ENUM, ARRAY})
_RANGED = frozenset({NUMBER, DATE})

# Operator -> field types it may be applied to
OPERATOR_FIELD_TYPES: Dict[str, FrozenSet[str]] = {
    op: (
        _ORDERABLE if op in ORDERING_OPERATORS
        else _TEXTUAL if op in TEXT_OPERATORS
        else _RANGED if op in RANGE_OPERATORS
        else ALL_TYPES
    )
    for op in OPERATORS
}


# Keywords
AND = 'AND'
OR = 'OR'
NOT = 'NOT'
LOGIC_KEYWORDS: FrozenSet[str] = frozenset({AND, OR, NOT})

ORDER = 'ORDER'
GROUP = 'GROUP'
BY = 'BY'
LIMIT = 'LIMIT'
CLAUSE_KEYWORDS: FrozenSet[str] = frozenset({ORDER, GROUP, LIMIT})

SORT_DIRECTIONS: FrozenSet[str] = frozenset({'ASC', 'DESC'})


# Relative time vocabulary, resolved against the execution clock
TIME_KEYWORDS: FrozenSet[str] = frozenset({
    'today', 'yesterday', 'this_week', 'last_week', 'this_month', 'last_month',
})

RELATIVE_TIME_PATTERN = re.compile(r'^(\d+)([hdwmy])$', re.IGNORECASE)

# Unit -> hours
RELATIVE_TIME_UNITS: Dict[str, int] = {
    'h': 1,
    'd': 24,
    'w': 7 * 24,
    'm': 30 * 24,
    'y': 365 * 24,
}


# Field-specific sentinel values with bespoke evaluation
SPECIAL_VALUES: Dict[str, FrozenSet[str]] = {
    'milestone': frozenset({'active', 'closed', 'null', '*'}),
    'due_date': frozenset({'past', 'upcoming', 'null'}),
    'epic': frozenset({'null', '*'}),
    'user_story': frozenset({'null'}),
    'blocked': frozenset({'true', 'false'}),
    'closed': frozenset({'true', 'false'}),
}

UPCOMING_WINDOW_DAYS = 7


# Known enum vocabularies, used for validation warnings only
STATUS_VALUES: Dict[EntityType, FrozenSet[str]] = {
    EntityType.ISSUE: frozenset({
        'new', 'in-progress', 'ready-for-test', 'closed', 'needs-info', 'rejected',
    }),
    EntityType.USER_STORY: frozenset({'new', 'in-progress', 'ready-for-test', 'done'}),
    EntityType.TASK: frozenset({'new', 'in-progress', 'ready-for-test', 'closed'}),
}

ENUM_VALUES: Dict[str, FrozenSet[str]] = {
    'priority': frozenset({'low', 'normal', 'high', 'urgent'}),
    'type': frozenset({'bug', 'feature', 'enhancement', 'task', 'story'}),
    'severity': frozenset({'minor', 'normal', 'important', 'critical'}),
}


COMPLEXITY_WEIGHTS: Dict[str, float] = {
    'filter': 1.0,
    'logic_op': 0.5,
    'order_by': 1.0,
    'limit': 0.2,
    'group_by': 2.0,
    'text_search': 1.5,
    'date_range': 1.2,
}


QUERY_EXAMPLES: Dict[str, tuple] = {
    'basic': (
        'status:open',
        'priority:high',
        'assignee:john',
        'type:bug',
    ),
    'comparison': (
        'points:>=5',
        'created:>2024-01-01',
        'updated:>7d',
        'ref:>100',
    ),
    'text_search': (
        'subject:contains:"login"',
        'description:*API*',
        'subject:~"login bug"',
        'tags:in:[frontend,backend]',
    ),
    'logical': (
        'status:open AND priority:high',
        'type:bug OR type:feature',
        'NOT status:closed',
        'milestone:null OR due_date:past',
    ),
    'advanced': (
        'status:open AND priority:high AND created:>7d',
        'tags:frontend AND points:3..8 AND status:!=done',
        'milestone:"Sprint 3" AND updated:>=this_week',
        'assignee:empty AND blocked:false',
    ),
    'sorting': (
        'status:open ORDER BY priority DESC',
        'assignee:john ORDER BY created ASC',
        'type:bug ORDER BY updated DESC LIMIT 10',
        'status:open GROUP BY assignee',
    ),
}


def fields_for(entity_type: EntityType) -> Dict[str, str]:
    """Return the field catalogue for an entity type."""
    return FIELD_TYPES[entity_type]


def canonical_field(name: str) -> str:
    """Resolve a field alias to its canonical name."""
    lowered = name.lower()
    return FIELD_ALIASES.get(lowered, lowered)
