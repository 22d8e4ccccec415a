"""
Query parser and tokenizer.

Implements a quote-aware tokenizer and a single-pass parser for the flat
query language: ``field:value`` filters joined by AND/OR (with per-filter
NOT), followed by optional ORDER BY, LIMIT and GROUP BY clauses. All field
and operator validation happens here so the executor never sees malformed
input.
"""

import re
from collections import Counter
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple, Union

from . import grammar
from .exceptions import QuerySyntaxError
from .models import (
    EntityType,
    FilterClause,
    Logic,
    OrderBy,
    QuerySpec,
    QueryStats,
    SortDirection,
)
from .values import is_time_keyword, to_datetime, to_numeric


FIELD_EXPR = 'FIELD_EXPR'
LOGIC = 'LOGIC'
ORDER = 'ORDER'
GROUP = 'GROUP'
BY = 'BY'
LIMIT = 'LIMIT'
PAREN = 'PAREN'
WORD = 'WORD'

_FIELD_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_.]*$')
_OPERATOR_NAME_RE = re.compile(r'^[A-Za-z_]+$')
_INTEGER_RE = re.compile(r'^[+-]?\d+$')

_QUOTES = ('"', "'")
# A single quote opens a literal only where a value starts
_SINGLE_QUOTE_OPENERS = ':[,* '

ENTITY_TYPE_NAMES = {
    'issue': EntityType.ISSUE,
    'issues': EntityType.ISSUE,
    'user_story': EntityType.USER_STORY,
    'user_stories': EntityType.USER_STORY,
    'userstory': EntityType.USER_STORY,
    'userstories': EntityType.USER_STORY,
    'task': EntityType.TASK,
    'tasks': EntityType.TASK,
}


def resolve_entity_type(entity_type: Union[EntityType, str]) -> EntityType:
    """Map ``issues``/``user_stories``/``tasks`` (or enum names) to an EntityType.

    Raises:
        QuerySyntaxError: If the name is not a supported entity type
    """
    if isinstance(entity_type, EntityType):
        return entity_type
    key = str(entity_type).strip().lower()
    if key in ENTITY_TYPE_NAMES:
        return ENTITY_TYPE_NAMES[key]
    raise QuerySyntaxError(
        f"Unsupported entity type '{entity_type}'. "
        f"Use one of: issues, user_stories, tasks"
    )


@dataclass
class Token:
    """Represents a lexical token."""
    type: str
    value: str
    position: int


class Tokenizer:
    """Splits query strings into tokens.

    Whitespace separates tokens only outside quoted strings and bracketed
    lists, so ``milestone:"Sprint 3"``, ``subject:'login bug'`` and
    ``tags:in:[a, b]`` each stay one token.
    """

    def __init__(self, query: str):
        """Initialize tokenizer with a query string."""
        self.query = query
        self.position = 0
        self.tokens: List[Token] = []
        self._tokenize()

    def _tokenize(self) -> None:
        """Tokenize the input query."""
        query = self.query
        length = len(query)

        while self.position < length:
            if query[self.position].isspace():
                self.position += 1
                continue

            start = self.position
            quote_start = None
            quote_char = None
            bracket_start = None
            depth = 0

            while self.position < length:
                char = query[self.position]
                if quote_char is not None:
                    if char == quote_char:
                        quote_start = quote_char = None
                elif _opens_quote(query, self.position, start):
                    quote_start = self.position
                    quote_char = char
                elif char == '[':
                    if depth == 0:
                        bracket_start = self.position
                    depth += 1
                elif char == ']':
                    if depth == 0:
                        raise QuerySyntaxError(
                            "Unexpected ']' without a matching '['",
                            ']',
                            self.position,
                        )
                    depth -= 1
                elif char.isspace() and depth == 0:
                    break
                self.position += 1

            if quote_start is not None:
                raise QuerySyntaxError(
                    'Unterminated string literal',
                    query[quote_start:],
                    quote_start,
                )
            if depth:
                raise QuerySyntaxError(
                    "Unclosed list literal, expected ']'",
                    query[bracket_start:],
                    bracket_start,
                )

            self.tokens.append(self._classify(query[start:self.position], start))

    def _classify(self, word: str, position: int) -> Token:
        """Assign a token type to a whitespace-delimited word."""
        if word.startswith('(') or word.endswith(')'):
            return Token(PAREN, word, position)

        field_name, sep, _ = word.partition(':')
        if sep and _FIELD_RE.match(field_name):
            return Token(FIELD_EXPR, word, position)

        keyword = word.upper()
        if keyword in grammar.LOGIC_KEYWORDS:
            return Token(LOGIC, keyword, position)
        if keyword in grammar.CLAUSE_KEYWORDS:
            # clause token types share the keyword spelling
            return Token(keyword, keyword, position)
        if keyword == grammar.BY:
            return Token(BY, keyword, position)
        return Token(WORD, word, position)

    def get_tokens(self) -> List[Token]:
        """Return the list of tokens."""
        return self.tokens


class Parser:
    """Parses tokens into a validated QuerySpec."""

    def __init__(self, tokens: List[Token], entity_type: EntityType, text: str = ''):
        """Initialize parser with a list of tokens and the target entity type."""
        self.tokens = tokens
        self.position = 0
        self.entity_type = entity_type
        self.fields = grammar.fields_for(entity_type)
        self.text = text

    def _current_token(self) -> Optional[Token]:
        """Get the current token."""
        if self.position < len(self.tokens):
            return self.tokens[self.position]
        return None

    def _consume(self) -> Token:
        """Consume and return the current token."""
        token = self._current_token()
        if token is None:
            raise QuerySyntaxError('Unexpected end of query')
        self.position += 1
        return token

    def parse(self) -> QuerySpec:
        """Parse the token stream into a QuerySpec."""
        filters: List[FilterClause] = []
        logic: Optional[str] = None
        pending_logic: Optional[Token] = None
        pending_not: Optional[Token] = None
        order_by: Optional[OrderBy] = None
        limit: Optional[int] = None
        group_by: Optional[str] = None
        clauses_started = False

        while self._current_token() is not None:
            token = self._current_token()

            if token.type == FIELD_EXPR:
                if clauses_started:
                    raise QuerySyntaxError(
                        'Filter expressions must come before ORDER BY, GROUP BY and LIMIT',
                        token.value,
                        token.position,
                    )
                if filters:
                    joiner = pending_logic.value if pending_logic else grammar.AND
                    if logic is not None and logic != joiner:
                        fragment = pending_logic or token
                        raise QuerySyntaxError(
                            'Cannot mix AND and OR in one query; '
                            'a query uses a single logic operator',
                            fragment.value,
                            fragment.position,
                        )
                    logic = joiner
                self._consume()
                clause = self._parse_filter(token)
                if pending_not is not None:
                    clause = FilterClause(
                        field=clause.field,
                        operator=grammar.NEGATIONS[clause.operator],
                        value=clause.value,
                    )
                filters.append(clause)
                pending_logic = None
                pending_not = None

            elif token.type == LOGIC:
                if clauses_started:
                    raise QuerySyntaxError(
                        f"'{token.value}' cannot follow ORDER BY, GROUP BY or LIMIT",
                        token.value,
                        token.position,
                    )
                if token.value == grammar.NOT:
                    if pending_not is not None:
                        raise QuerySyntaxError(
                            'NOT cannot be repeated', token.value, token.position
                        )
                    pending_not = token
                else:
                    if not filters or pending_logic is not None or pending_not is not None:
                        raise QuerySyntaxError(
                            f"'{token.value}' must join two filter expressions",
                            token.value,
                            token.position,
                        )
                    pending_logic = token
                self._consume()

            elif token.type in (ORDER, GROUP, LIMIT):
                dangling = pending_logic or pending_not
                if dangling is not None:
                    raise QuerySyntaxError(
                        f"'{dangling.value}' must be followed by a filter expression",
                        dangling.value,
                        dangling.position,
                    )
                clauses_started = True
                if token.type == ORDER:
                    if order_by is not None:
                        raise QuerySyntaxError(
                            'ORDER BY may appear only once', token.value, token.position
                        )
                    order_by = self._parse_order_by()
                elif token.type == GROUP:
                    if group_by is not None:
                        raise QuerySyntaxError(
                            'GROUP BY may appear only once', token.value, token.position
                        )
                    group_by = self._parse_group_by()
                else:
                    if limit is not None:
                        raise QuerySyntaxError(
                            'LIMIT may appear only once', token.value, token.position
                        )
                    limit = self._parse_limit()

            elif token.type == PAREN:
                raise QuerySyntaxError(
                    'Parenthesized grouping is not supported; '
                    'use a single AND or OR across all filters',
                    token.value,
                    token.position,
                )

            else:
                raise QuerySyntaxError(
                    "Unexpected token; filters must look like 'field:value'",
                    token.value,
                    token.position,
                )

        dangling = pending_logic or pending_not
        if dangling is not None:
            raise QuerySyntaxError(
                f"'{dangling.value}' must be followed by a filter expression",
                dangling.value,
                dangling.position,
            )

        return QuerySpec(
            entity_type=self.entity_type,
            filters=tuple(filters),
            logic=Logic(logic or grammar.AND),
            order_by=order_by,
            limit=limit,
            group_by=group_by,
            text=self.text,
        )

    # Filter expressions

    def _parse_filter(self, token: Token) -> FilterClause:
        """Parse a ``field:[operator:]value`` token into a FilterClause."""
        field_part, _, rest = token.value.partition(':')
        rest_position = token.position + len(field_part) + 1

        operator, raw_value, value_position = self._split_operator(rest, rest_position)

        field = grammar.canonical_field(field_part)
        field_type = self.fields.get(field)
        if field_type is None:
            raise QuerySyntaxError(
                f"Unknown field '{field_part}' for {self.entity_type.value}. "
                f"Valid fields: {', '.join(sorted(self.fields))}",
                field_part,
                token.position,
            )

        operator, value = self._parse_operand(
            field, operator, raw_value, value_position
        )

        if field_type not in grammar.OPERATOR_FIELD_TYPES[operator]:
            raise QuerySyntaxError(
                f"Operator '{operator}' cannot be applied to {field_type} field '{field}'",
                token.value,
                token.position,
            )

        value = self._validate_value(field, field_type, operator, value, token)
        return FilterClause(field=field, operator=operator, value=value)

    def _split_operator(
        self,
        rest: str,
        position: int,
    ) -> Tuple[str, Optional[str], int]:
        """Split the text after ``field:`` into operator and raw value.

        Returns:
            Tuple of (operator, raw value or None, position of the raw value)
        """
        if rest == '':
            raise QuerySyntaxError('Missing value after field', rest, position)

        run = 0
        while run < len(rest) and rest[run] in grammar.SYMBOL_CHARS:
            run += 1
        if run:
            symbol = rest[:run]
            if symbol not in grammar.SYMBOL_OPERATORS:
                raise QuerySyntaxError(
                    f"Unrecognized operator '{symbol}'", symbol, position
                )
            offset = run
            if rest[offset:offset + 1] == ':':
                offset += 1
            remainder = rest[offset:]
            if remainder == '':
                raise QuerySyntaxError(
                    f"Missing value after operator '{symbol}'", symbol, position
                )
            return symbol, remainder, position + offset

        head, sep, tail = _partition_top_level(rest, ':')
        lowered = head.lower()
        if sep:
            if lowered in grammar.NAMED_OPERATORS:
                operator = grammar.NAMED_OPERATORS[lowered]
                if operator in grammar.VALUELESS_OPERATORS:
                    raise QuerySyntaxError(
                        f"Operator '{head}' does not take a value", rest, position
                    )
                if tail == '':
                    raise QuerySyntaxError(
                        f"Missing value after operator '{head}'", head, position
                    )
                return operator, tail, position + len(head) + 1
            if _OPERATOR_NAME_RE.match(head):
                raise QuerySyntaxError(
                    f"Unrecognized operator '{head}'", head, position
                )
        elif grammar.NAMED_OPERATORS.get(lowered) in grammar.VALUELESS_OPERATORS:
            return grammar.NAMED_OPERATORS[lowered], None, position

        return grammar.EQUAL, rest, position

    def _parse_operand(
        self,
        field: str,
        operator: str,
        raw_value: Optional[str],
        position: int,
    ) -> Tuple[str, Any]:
        """Convert the raw value, applying range and wildcard sugar."""
        if operator in grammar.VALUELESS_OPERATORS:
            return operator, None

        if operator in grammar.LIST_OPERATORS:
            return operator, self._parse_list(operator, raw_value, position)

        if raw_value.startswith('['):
            raise QuerySyntaxError(
                f"Operator '{operator}' does not accept a list", raw_value, position
            )

        if operator == grammar.EQUAL and raw_value[:1] not in _QUOTES:
            if '..' in raw_value:
                start, _, end = raw_value.partition('..')
                if not start or not end:
                    raise QuerySyntaxError(
                        "Range must look like 'a..b'", raw_value, position
                    )
                bounds = (
                    self._parse_scalar(start, position),
                    self._parse_scalar(end, position + len(start) + 2),
                )
                return grammar.BETWEEN, bounds

            if '*' in raw_value:
                return self._parse_wildcard(field, raw_value, position)

        return operator, self._parse_scalar(raw_value, position)

    def _parse_wildcard(self, field: str, raw_value: str, position: int) -> Tuple[str, Any]:
        """Translate ``*text*``, ``text*`` and ``*text`` into text operators."""
        if raw_value == '*':
            if '*' in grammar.SPECIAL_VALUES.get(field, ()):
                return grammar.EQUAL, '*'
            return grammar.EXISTS, None

        inner = raw_value.strip('*')
        if not inner or '*' in inner:
            raise QuerySyntaxError(
                'Wildcards are only supported at the start or end of a value',
                raw_value,
                position,
            )
        text = self._parse_scalar(inner, position)
        if not isinstance(text, str):
            text = inner
        if raw_value.startswith('*') and raw_value.endswith('*'):
            return grammar.CONTAINS, text
        if raw_value.endswith('*'):
            return grammar.STARTS_WITH, text
        return grammar.ENDS_WITH, text

    def _parse_scalar(self, raw: str, position: int) -> Any:
        """Parse a single literal: quoted string, number or bare word."""
        quote = raw[:1]
        if quote in _QUOTES:
            if len(raw) < 2 or not raw.endswith(quote) or quote in raw[1:-1]:
                raise QuerySyntaxError(
                    'Malformed string literal', raw, position
                )
            return raw[1:-1]
        if '"' in raw:
            raise QuerySyntaxError(
                'Quotes must enclose the whole value', raw, position
            )
        number = to_numeric(raw)
        if number is not None:
            return number
        return raw

    def _parse_list(self, operator: str, raw_value: str, position: int) -> Tuple[Any, ...]:
        """Parse a ``[a,b,c]`` list literal."""
        if not (raw_value.startswith('[') and raw_value.endswith(']')):
            raise QuerySyntaxError(
                f"Operator '{operator}' expects a bracketed list like [a,b]",
                raw_value,
                position,
            )

        items = []
        offset = position + 1
        for element in _split_top_level(raw_value[1:-1], ','):
            stripped = element.strip()
            if not stripped:
                raise QuerySyntaxError('Empty element in list', raw_value, position)
            if '[' in stripped or ']' in stripped:
                raise QuerySyntaxError('Nested lists are not supported', raw_value, position)
            items.append(self._parse_scalar(stripped, offset))
            offset += len(element) + 1

        if operator in grammar.RANGE_OPERATORS and len(items) != 2:
            raise QuerySyntaxError(
                f"BETWEEN requires exactly two values, got {len(items)}",
                raw_value,
                position,
            )
        return tuple(items)

    def _validate_value(
        self,
        field: str,
        field_type: str,
        operator: str,
        value: Any,
        token: Token,
    ) -> Any:
        """Check operands against the field's declared type."""
        ranged = operator in grammar.ORDERING_OPERATORS or operator in grammar.RANGE_OPERATORS
        operands = value if isinstance(value, tuple) else (value,)

        if field_type == grammar.NUMBER and ranged:
            for operand in operands:
                if to_numeric(operand) is None:
                    raise QuerySyntaxError(
                        f"Field '{field}' expects a numeric value", token.value, token.position
                    )

        if field_type == grammar.DATE and ranged:
            for operand in operands:
                if not is_time_keyword(operand) and to_datetime(operand) is None:
                    raise QuerySyntaxError(
                        f"Field '{field}' expects a date (YYYY-MM-DD) or a time keyword "
                        f"such as today, this_week or 7d",
                        token.value,
                        token.position,
                    )

        if field_type == grammar.BOOLEAN and operator in (grammar.EQUAL, grammar.NOT_EQUAL):
            if not isinstance(value, str) or value.lower() not in ('true', 'false'):
                raise QuerySyntaxError(
                    f"Field '{field}' expects true or false", token.value, token.position
                )
            return value.lower()

        return value

    # Trailing clauses

    def _expect_field(self, clause: str) -> str:
        """Consume a field name following ORDER BY / GROUP BY."""
        token = self._current_token()
        if token is None or token.type != WORD:
            raise QuerySyntaxError(
                f'{clause} requires a field name',
                token.value if token else clause,
                token.position if token else None,
            )
        self._consume()
        field = grammar.canonical_field(token.value)
        if field not in self.fields:
            raise QuerySyntaxError(
                f"Unknown field '{token.value}' in {clause} for {self.entity_type.value}",
                token.value,
                token.position,
            )
        return field

    def _expect_by(self, keyword: Token) -> None:
        token = self._current_token()
        if token is None or token.type != BY:
            raise QuerySyntaxError(
                f'Expected BY after {keyword.value}', keyword.value, keyword.position
            )
        self._consume()

    def _parse_order_by(self) -> OrderBy:
        """Parse ``ORDER BY field [ASC|DESC]``."""
        keyword = self._consume()
        self._expect_by(keyword)
        field = self._expect_field('ORDER BY')

        direction = SortDirection.ASC
        token = self._current_token()
        if token is not None and token.type == WORD and token.value.upper() in grammar.SORT_DIRECTIONS:
            direction = SortDirection(token.value.upper())
            self._consume()

        return OrderBy(field=field, direction=direction)

    def _parse_group_by(self) -> str:
        """Parse ``GROUP BY field``."""
        keyword = self._consume()
        self._expect_by(keyword)
        return self._expect_field('GROUP BY')

    def _parse_limit(self) -> int:
        """Parse ``LIMIT n``."""
        keyword = self._consume()
        token = self._current_token()
        if token is None or token.type != WORD:
            raise QuerySyntaxError(
                'LIMIT requires a number', keyword.value, keyword.position
            )
        self._consume()
        if not _INTEGER_RE.match(token.value) or int(token.value) <= 0:
            raise QuerySyntaxError(
                'LIMIT must be a positive integer', token.value, token.position
            )
        return int(token.value)


def _partition_top_level(text: str, separator: str) -> Tuple[str, str, str]:
    """Like str.partition, ignoring separators inside quotes or brackets."""
    parts = _split_top_level(text, separator, maxsplit=1)
    if len(parts) == 1:
        return text, '', ''
    return parts[0], separator, parts[1]


def _opens_quote(text: str, index: int, start: int) -> bool:
    """Whether the character at ``index`` starts a quoted literal.

    Double quotes always do. A single quote does only at the start of a
    value, so apostrophes inside bare words stay literal.
    """
    char = text[index]
    if char == '"':
        return True
    return char == "'" and (index == start or text[index - 1] in _SINGLE_QUOTE_OPENERS)


def _split_top_level(text: str, separator: str, maxsplit: int = -1) -> List[str]:
    """Split on a separator outside quotes and brackets."""
    parts = []
    current = []
    quote_char = None
    depth = 0

    for index, char in enumerate(text):
        if quote_char is not None:
            if char == quote_char:
                quote_char = None
        elif _opens_quote(text, index, 0):
            quote_char = char
        elif char == '[':
            depth += 1
        elif char == ']':
            depth -= 1
        elif (
            char == separator and depth == 0
            and (maxsplit < 0 or len(parts) < maxsplit)
        ):
            parts.append(''.join(current))
            current = []
            continue
        current.append(char)

    parts.append(''.join(current))
    return parts


def parse_query(query: str, entity_type: Union[EntityType, str] = EntityType.ISSUE) -> QuerySpec:
    """Parse a query string.

    Args:
        query: The query string, e.g. ``status:open AND priority:high LIMIT 10``
        entity_type: Target entity type (EntityType or ``issues``/``user_stories``/``tasks``)

    Returns:
        A validated QuerySpec

    Raises:
        QuerySyntaxError: If the query is empty, malformed, or references
            fields/operators not valid for the entity type
    """
    resolved = resolve_entity_type(entity_type)
    if not isinstance(query, str) or not query.strip():
        raise QuerySyntaxError('Query string cannot be empty')

    tokenizer = Tokenizer(query)
    parser = Parser(tokenizer.get_tokens(), resolved, query)
    return parser.parse()


def get_query_stats(spec: QuerySpec, max_complexity: Optional[float] = None) -> QueryStats:
    """Summarize a parsed query.

    Args:
        spec: Parsed query
        max_complexity: Optional threshold reported via ``exceeds_max_complexity``

    Returns:
        QueryStats with counts, weighted complexity and validation warnings
    """
    weights = grammar.COMPLEXITY_WEIGHTS
    field_types = grammar.fields_for(spec.entity_type)

    complexity = 0.0
    warnings: List[str] = []
    fields: List[str] = []
    operators: Counter = Counter()

    for clause in spec.filters:
        field_type = field_types.get(clause.field)
        if clause.operator in grammar.TEXT_OPERATORS:
            complexity += weights['text_search']
        elif field_type == grammar.DATE and (
            clause.operator in grammar.ORDERING_OPERATORS
            or clause.operator in grammar.RANGE_OPERATORS
        ):
            complexity += weights['date_range']
        else:
            complexity += weights['filter']

        if clause.field not in fields:
            fields.append(clause.field)
        operators[clause.operator] += 1
        warnings.extend(_enum_warnings(spec.entity_type, clause))

    if len(spec.filters) > 1:
        complexity += weights['logic_op'] * (len(spec.filters) - 1)
    if spec.order_by:
        complexity += weights['order_by']
    if spec.limit:
        complexity += weights['limit']
    if spec.group_by:
        complexity += weights['group_by']

    complexity = round(complexity, 1)

    return QueryStats(
        filter_count=len(spec.filters),
        logic=spec.logic,
        has_order_by=spec.order_by is not None,
        has_limit=spec.limit is not None,
        has_group_by=spec.group_by is not None,
        complexity=complexity,
        fields=fields,
        operators=dict(operators),
        warnings=warnings,
        exceeds_max_complexity=max_complexity is not None and complexity > max_complexity,
    )


def _enum_warnings(entity_type: EntityType, clause: FilterClause) -> List[str]:
    if clause.field == 'status':
        known = grammar.STATUS_VALUES[entity_type]
    else:
        known = grammar.ENUM_VALUES.get(clause.field)
    if not known or clause.operator not in (
        grammar.EQUAL, grammar.NOT_EQUAL, grammar.IN, grammar.NOT_IN
    ):
        return []

    values = clause.value if isinstance(clause.value, tuple) else (clause.value,)
    return [
        f"Value '{value}' is not a known {clause.field} value "
        f"({', '.join(sorted(known))})"
        for value in values
        if isinstance(value, str) and value.lower() not in known
    ]
