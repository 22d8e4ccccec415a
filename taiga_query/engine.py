"""
Query execution engine.

Runs a parsed QuerySpec against the records of one project through a fixed
fetch -> filter -> sort -> group -> limit pipeline and returns the result
set together with timing and count metadata.
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from functools import cmp_to_key
from typing import Any, Callable, Dict, List, Optional, Sequence

from . import grammar
from .exceptions import QueryExecutionError
from .fields import resolve_alternates, resolve_field
from .models import (
    EntityType,
    FilterClause,
    GroupedRecords,
    Logic,
    OrderBy,
    QuerySpec,
    Record,
    ResultSet,
    SortDirection,
)
from .sources import RecordSource
from .values import (
    collation_key,
    is_empty,
    is_number,
    is_time_keyword,
    js_string,
    resolve_time_keyword,
    to_datetime,
    to_numeric,
)


logger = logging.getLogger(__name__)

UNDEFINED_GROUP = 'undefined'


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QueryExecutor:
    """Executes parsed queries against records from a RecordSource."""

    def __init__(
        self,
        source: RecordSource,
        clock: Optional[Callable[[], datetime]] = None,
        task_fetch_concurrency: int = 5,
    ):
        """Initialize the executor.

        Args:
            source: Data-access collaborator returning complete record lists
            clock: Returns the current aware UTC time; relative time keywords
                and special values resolve against it
            task_fetch_concurrency: Maximum concurrent per-story task fetches
        """
        self.source = source
        self.clock = clock or _utcnow
        self.task_fetch_concurrency = max(1, task_fetch_concurrency)

    async def execute(self, spec: QuerySpec, project_id: Any) -> ResultSet:
        """Execute a query against one project.

        Args:
            spec: Parsed query
            project_id: Project identifier passed to the source

        Returns:
            ResultSet with results and execution metadata

        Raises:
            QueryExecutionError: If fetching records from the source fails
        """
        start_time = time.time()
        now = self.clock()

        records = await self._fetch(spec.entity_type, project_id)
        logger.debug(f"Fetched {len(records)} {spec.entity_type.value} records for project {project_id}")

        matched = self.apply_filters(records, spec.filters, spec.logic, now)

        ordered = matched
        if spec.order_by is not None:
            ordered = self.apply_sorting(matched, spec.order_by)

        results: List[Any] = list(ordered)
        if spec.group_by:
            results = self.apply_grouping(ordered, spec.group_by)

        if spec.limit is not None:
            results = results[:spec.limit]

        elapsed_ms = (time.time() - start_time) * 1000

        return ResultSet(
            results=results,
            total=len(results),
            query=spec,
            executed_at=now,
            execution_time_ms=elapsed_ms,
            total_fetched=len(records),
            total_matched=len(matched),
        )

    # Fetch

    async def _fetch(self, entity_type: EntityType, project_id: Any) -> List[Record]:
        try:
            if entity_type == EntityType.ISSUE:
                records = await self.source.list_issues(project_id)
            elif entity_type == EntityType.USER_STORY:
                records = await self.source.list_user_stories(project_id)
            else:
                records = await self._fetch_tasks(project_id)
        except QueryExecutionError:
            raise
        except Exception as e:
            raise QueryExecutionError(f"Query execution failed: {e}") from e

        return list(records or [])

    async def _fetch_tasks(self, project_id: Any) -> List[Record]:
        """Fetch tasks story by story; a failing story is skipped."""
        stories = await self.source.list_user_stories(project_id) or []
        semaphore = asyncio.Semaphore(self.task_fetch_concurrency)

        async def fetch_story_tasks(story: Record) -> List[Record]:
            story_id = story.get('id')
            async with semaphore:
                try:
                    return list(await self.source.list_tasks(story_id) or [])
                except Exception as e:
                    logger.warning(f"Failed to fetch tasks for user story {story_id}: {e}")
                    return []

        batches = await asyncio.gather(*(fetch_story_tasks(story) for story in stories))
        return [task for batch in batches for task in batch]

    # Filter

    def apply_filters(
        self,
        records: Sequence[Record],
        filters: Sequence[FilterClause],
        logic: Logic = Logic.AND,
        now: Optional[datetime] = None,
    ) -> List[Record]:
        """Keep records matching all (AND) or any (OR) of the filters."""
        if not filters:
            return list(records)
        now = now or self.clock()
        combine = any if logic == Logic.OR else all
        return [
            record for record in records
            if combine(self.evaluate_filter(record, clause, now) for clause in filters)
        ]

    def evaluate_filter(
        self,
        record: Record,
        clause: FilterClause,
        now: Optional[datetime] = None,
    ) -> bool:
        """Evaluate a single filter clause against a record."""
        now = now or self.clock()
        field, operator, value = clause.field, clause.operator, clause.value

        if operator in (grammar.EQUAL, grammar.NOT_EQUAL) and _is_special_value(field, value):
            matched = self._evaluate_special_value(record, field, value.lower(), now)
            return matched if operator == grammar.EQUAL else not matched

        item_value = resolve_field(record, field)

        if operator == grammar.EQUAL:
            return self._matches_any(record, field, item_value, value, now)
        if operator == grammar.NOT_EQUAL:
            return not self._matches_any(record, field, item_value, value, now)
        if operator == grammar.IN:
            return self._matches_in(record, field, item_value, value)
        if operator == grammar.NOT_IN:
            return not self._matches_in(record, field, item_value, value)

        if operator in grammar.ORDERING_OPERATORS:
            return self._compare_ordering(item_value, operator, value, now)

        if operator == grammar.CONTAINS:
            return _text_match(item_value, value, str.__contains__)
        if operator == grammar.NOT_CONTAINS:
            return not _text_match(item_value, value, str.__contains__)
        if operator == grammar.STARTS_WITH:
            return _text_match(item_value, value, str.startswith)
        if operator == grammar.NOT_STARTS_WITH:
            return not _text_match(item_value, value, str.startswith)
        if operator == grammar.ENDS_WITH:
            return _text_match(item_value, value, str.endswith)
        if operator == grammar.NOT_ENDS_WITH:
            return not _text_match(item_value, value, str.endswith)
        if operator == grammar.FUZZY:
            return _fuzzy_match(item_value, value)
        if operator == grammar.NOT_FUZZY:
            return not _fuzzy_match(item_value, value)

        if operator == grammar.BETWEEN:
            return self._compare_between(item_value, value, now)
        if operator == grammar.NOT_BETWEEN:
            return not self._compare_between(item_value, value, now)

        if operator == grammar.EXISTS:
            return item_value is not None
        if operator == grammar.NULL:
            return item_value is None
        if operator == grammar.EMPTY:
            return is_empty(item_value)
        if operator == grammar.NOT_EMPTY:
            return not is_empty(item_value)

        logger.warning(f"Unsupported operator: {operator}")
        return True

    def _evaluate_special_value(
        self,
        record: Record,
        field: str,
        value: str,
        now: datetime,
    ) -> bool:
        """Evaluate a field-specific sentinel such as ``milestone:active``."""
        item_value = resolve_field(record, field)

        if value == 'null':
            return item_value is None

        if field in ('blocked', 'closed'):
            return item_value is (value == 'true')

        if field == 'due_date':
            due = to_datetime(item_value) if item_value else None
            if due is None:
                return False
            if value == 'past':
                return due < now and record.get('is_closed') is not True
            if value == 'upcoming':
                return now <= due <= now + timedelta(days=grammar.UPCOMING_WINDOW_DAYS)
            return False

        # milestone active/closed/* and epic * only check that a value is set;
        # sprint status is not part of the record
        return item_value is not None

    # Comparisons

    def _matches_any(
        self,
        record: Record,
        field: str,
        item_value: Any,
        expected: Any,
        now: datetime,
    ) -> bool:
        candidates = [item_value] + resolve_alternates(record, field)
        return any(_values_equal(candidate, expected, now) for candidate in candidates)

    def _matches_in(
        self,
        record: Record,
        field: str,
        item_value: Any,
        expected: Any,
    ) -> bool:
        if not isinstance(expected, (list, tuple)):
            return False
        wanted = [js_string(item).lower() for item in expected]

        if isinstance(item_value, (list, tuple)):
            return any(js_string(item).lower() in wanted for item in item_value)

        if item_value is None:
            return 'null' in wanted

        candidates = [item_value] + resolve_alternates(record, field)
        return any(js_string(candidate).lower() in wanted for candidate in candidates)

    def _compare_ordering(
        self,
        item_value: Any,
        operator: str,
        expected: Any,
        now: datetime,
    ) -> bool:
        negated = operator not in (
            grammar.GREATER_THAN, grammar.GREATER_EQUAL, grammar.LESS_THAN, grammar.LESS_EQUAL
        )
        if negated:
            operator = grammar.NEGATIONS[operator]

        result = self._ordered(item_value, operator, expected, now)
        return not result if negated else result

    def _ordered(self, item_value: Any, operator: str, expected: Any, now: datetime) -> bool:
        if item_value is None:
            return False

        left, right = _comparable_pair(item_value, expected, now)

        if operator == grammar.GREATER_THAN:
            return left > right
        if operator == grammar.GREATER_EQUAL:
            return left >= right
        if operator == grammar.LESS_THAN:
            return left < right
        return left <= right

    def _compare_between(self, item_value: Any, bounds: Any, now: datetime) -> bool:
        if not isinstance(bounds, (list, tuple)) or len(bounds) != 2:
            logger.warning("BETWEEN operator requires exactly two bounds")
            return False
        start, end = bounds

        number = to_numeric(item_value)
        low, high = to_numeric(start), to_numeric(end)
        if number is not None and low is not None and high is not None:
            return low <= number <= high

        moment = to_datetime(item_value)
        low, high = _to_moment(start, now), _to_moment(end, now)
        if moment is not None and low is not None and high is not None:
            return low <= moment <= high

        return False

    # Sort and group

    def apply_sorting(self, records: Sequence[Record], order_by: OrderBy) -> List[Record]:
        """Stable sort on a field; records without a value always come first."""
        keyed = [(resolve_field(record, order_by.field), record) for record in records]
        missing = [record for value, record in keyed if value is None]
        present = [pair for pair in keyed if pair[0] is not None]

        present.sort(
            key=cmp_to_key(lambda a, b: _compare_sort_values(a[0], b[0])),
            reverse=order_by.direction == SortDirection.DESC,
        )
        return missing + [record for _, record in present]

    def apply_grouping(self, records: Sequence[Record], group_by: str) -> List[GroupedRecords]:
        """Bucket records by the string form of a field, in first-seen order."""
        groups: Dict[str, List[Record]] = {}

        for record in records:
            value = resolve_field(record, group_by)
            key = UNDEFINED_GROUP if value is None or value == '' else js_string(value)
            if key not in groups:
                groups[key] = []
            groups[key].append(record)

        return [
            GroupedRecords(group_value=key, count=len(items), items=items)
            for key, items in groups.items()
        ]


def _is_special_value(field: str, value: Any) -> bool:
    return isinstance(value, str) and value.lower() in grammar.SPECIAL_VALUES.get(field, ())


def _to_moment(value: Any, now: datetime) -> Optional[datetime]:
    if is_time_keyword(value):
        return resolve_time_keyword(value, now)
    return to_datetime(value)


def _values_equal(actual: Any, expected: Any, now: datetime) -> bool:
    """Equality with numeric, case-insensitive string and boolean coercion."""
    if isinstance(actual, (list, tuple)):
        return any(_values_equal(item, expected, now) for item in actual)

    if actual is None:
        return expected is None or expected == 'null'

    if is_time_keyword(expected):
        moment = to_datetime(actual) if isinstance(actual, (str, datetime)) else None
        if moment is not None:
            return moment.date() == resolve_time_keyword(expected, now).date()

    actual_number = to_numeric(actual)
    expected_number = to_numeric(expected)
    if actual_number is not None and expected_number is not None:
        return actual_number == expected_number

    if isinstance(actual, str) or isinstance(expected, str):
        return js_string(actual).strip().lower() == js_string(expected).strip().lower()

    return actual == expected


def _comparable_pair(item_value: Any, expected: Any, now: datetime):
    """Coerce both sides to numbers, then dates, then strings."""
    left_number, right_number = to_numeric(item_value), to_numeric(expected)
    if left_number is not None and right_number is not None:
        return left_number, right_number

    left_moment, right_moment = to_datetime(item_value), _to_moment(expected, now)
    if left_moment is not None and right_moment is not None:
        return left_moment, right_moment

    if isinstance(item_value, str) and isinstance(expected, str):
        return item_value, expected
    return js_string(item_value), js_string(expected)


def _text_match(item_value: Any, expected: Any, test: Callable[[str, str], bool]) -> bool:
    """Case-insensitive substring test; empty operands never match."""
    if not item_value or expected is None or expected == '':
        return False
    return test(js_string(item_value).lower(), js_string(expected).lower())


def _fuzzy_match(item_value: Any, expected: Any) -> bool:
    """Every whitespace-separated word of the query must occur in the value."""
    if not item_value or expected is None or expected == '':
        return False
    text = js_string(item_value).lower()
    return all(word in text for word in js_string(expected).lower().split())


def _compare_sort_values(a: Any, b: Any) -> int:
    if isinstance(a, str) and isinstance(b, str):
        left, right = collation_key(a), collation_key(b)
    elif is_number(a) and is_number(b):
        left, right = a, b
    else:
        left, right = js_string(a), js_string(b)
    return (left > right) - (left < right)
