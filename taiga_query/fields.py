"""
Field resolution for Taiga records.

Taiga list endpoints return records that mix flat fields with nested
``*_extra_info`` objects, and which representation is populated varies by
endpoint and entity. Each logical query field maps to a resolver that
normalizes those shapes into one comparable value. Relational fields also
register alternate resolvers (identifiers, display names) so that equality
matches either representation.
"""

from typing import Any, Callable, Dict, List, Tuple, Union

from .models import Record
from .values import to_numeric


Resolver = Callable[[Record], Any]
Getter = Union[str, Resolver]


def get_path(record: Any, path: str) -> Any:
    """Traverse a dotted path (``a.b.c``), returning None if a segment is missing."""
    current = record
    for part in path.split('.'):
        if isinstance(current, dict):
            current = current.get(part)
        else:
            return None
    return current


def _first_truthy(*getters: Getter) -> Resolver:
    """Build a resolver returning the first non-empty value of a fallback chain."""
    def resolve(record: Record) -> Any:
        for getter in getters:
            value = getter(record) if callable(getter) else get_path(record, getter)
            if value or value is False:
                return value
        return None
    return resolve


def _first_epic(key: str) -> Resolver:
    def resolve(record: Record) -> Any:
        epics = record.get('epics')
        if isinstance(epics, list) and epics and isinstance(epics[0], dict):
            return epics[0].get(key)
        return None
    return resolve


def _strict_flag(key: str) -> Resolver:
    return lambda record: record.get(key) is True


def _attachment_count(record: Record) -> int:
    attachments = record.get('attachments')
    if isinstance(attachments, (list, tuple)):
        return len(attachments)
    return 0


def _comment_count(record: Record) -> Any:
    return record.get('total_comments') or 0


def _points(record: Record) -> Any:
    total = record.get('total_points')
    if total is not None:
        return total
    return to_numeric(record.get('points'))


def _tags(record: Record) -> Any:
    """Flatten Taiga ``[name, color]`` tag pairs into a list of names."""
    tags = record.get('tags')
    if not isinstance(tags, (list, tuple)):
        return tags
    names = []
    for tag in tags:
        if isinstance(tag, (list, tuple)):
            if tag:
                names.append(tag[0])
        elif tag is not None:
            names.append(tag)
    return names


def _user(prefix: str) -> Resolver:
    return _first_truthy(f'{prefix}_extra_info.username', f'{prefix}_extra_info.id', prefix)


def _named(prefix: str) -> Resolver:
    return _first_truthy(f'{prefix}_extra_info.name', f'{prefix}_extra_info.id', prefix)


FIELD_RESOLVERS: Dict[str, Resolver] = {
    'milestone': _first_truthy(
        'milestone_slug',
        'milestone_extra_info.slug',
        'milestone_extra_info.name',
        'milestone_id',
        'milestone',
    ),
    'epic': _first_truthy(
        'epic_extra_info.subject',
        _first_epic('subject'),
        'epic_id',
        'epic_extra_info.id',
        _first_epic('id'),
        'epic',
    ),
    'user_story': _first_truthy(
        'user_story_extra_info.subject',
        'user_story_id',
        'user_story_extra_info.id',
        'user_story',
    ),
    'assignee': _user('assigned_to'),
    'owner': _user('owner'),
    'reporter': _first_truthy('reporter', 'owner_extra_info.username', 'owner'),
    'status': _named('status'),
    'priority': _named('priority'),
    'type': _named('type'),
    'severity': _named('severity'),
    'blocked': _strict_flag('is_blocked'),
    'closed': _strict_flag('is_closed'),
    'attachments': _attachment_count,
    'comments': _comment_count,
    'created': _first_truthy('created_date'),
    'updated': _first_truthy('modified_date'),
    'due_date': _first_truthy('due_date'),
    'finish_date': _first_truthy('finish_date'),
    'points': _points,
    'tags': _tags,
}

# Additional representations accepted by =, !=, in and not_in
ALTERNATE_RESOLVERS: Dict[str, Tuple[Resolver, ...]] = {
    'milestone': (
        _first_truthy('milestone_extra_info.name'),
        _first_truthy('milestone_id', 'milestone_extra_info.id', 'milestone'),
    ),
    'epic': (
        _first_truthy('epic_id', 'epic_extra_info.id', _first_epic('id'), 'epic'),
        _first_truthy('epic_extra_info.ref'),
    ),
    'user_story': (
        _first_truthy('user_story_id', 'user_story_extra_info.id', 'user_story'),
        _first_truthy('user_story_extra_info.ref'),
    ),
    'assignee': (
        _first_truthy('assigned_to_extra_info.id', 'assigned_to'),
        _first_truthy('assigned_to_extra_info.full_name_display'),
    ),
    'owner': (
        _first_truthy('owner_extra_info.id', 'owner'),
        _first_truthy('owner_extra_info.full_name_display'),
    ),
    'status': (_first_truthy('status_extra_info.id', 'status'),),
    'priority': (_first_truthy('priority_extra_info.id', 'priority'),),
    'type': (_first_truthy('type_extra_info.id', 'type'),),
    'severity': (_first_truthy('severity_extra_info.id', 'severity'),),
}


def resolve_field(record: Record, field: str) -> Any:
    """Resolve a logical field against a record.

    Args:
        record: Raw record as returned by the Taiga API
        field: Canonical field name, or a dotted path for unlisted fields

    Returns:
        The normalized value, or None if the record has no value for it
    """
    resolver = FIELD_RESOLVERS.get(field)
    if resolver is not None:
        return resolver(record)
    return get_path(record, field)


def resolve_alternates(record: Record, field: str) -> List[Any]:
    """Return the alternate representations of a relational field, if any."""
    values = []
    for resolver in ALTERNATE_RESOLVERS.get(field, ()):
        value = resolver(record)
        if value is not None:
            values.append(value)
    return values
