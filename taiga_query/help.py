"""
Query language help text, built from the grammar catalogue.
"""

from typing import Callable, Dict, List, Optional

from . import grammar
from .models import EntityType


ENTITY_LABELS = {
    EntityType.ISSUE: 'Issues',
    EntityType.USER_STORY: 'User Stories',
    EntityType.TASK: 'Tasks',
}


def _syntax_help() -> str:
    return '\n'.join([
        '**Query Syntax**',
        '',
        '## Filters',
        '`field:value` - field equals value',
        '`field:operator:value` - field compared with an operator, e.g. `points:>=5`',
        '`field:a..b` - range, same as `field:between:[a,b]`',
        '`field:*text*`, `field:text*`, `field:*text` - wildcard text match',
        'Quote values containing spaces: `milestone:"Sprint 3"` or `subject:\'login bug\'`',
        '',
        '## Logic',
        '`AND` / `OR` join filters; a query uses one of them throughout.',
        'Adjacent filters without a keyword are joined with AND.',
        '`NOT` negates the filter that follows it.',
        'Parenthesized grouping is not supported.',
        '',
        '## Clauses (after the filters, each at most once)',
        '`ORDER BY field [ASC|DESC]` - sort; records without a value come first',
        '`GROUP BY field` - group results by a field',
        '`LIMIT n` - keep the first n results (or groups)',
        '',
        '## Time keywords',
        ', '.join(f'`{k}`' for k in sorted(grammar.TIME_KEYWORDS)),
        '`<n>h`, `<n>d`, `<n>w`, `<n>m`, `<n>y` - relative to now, e.g. `updated:>7d`',
    ])


def _operators_help() -> str:
    lines = ['**Operators**', '', '## Comparison']
    lines += [
        '`field:value` or `field:=value` - equals (numbers, case-insensitive text)',
        '`field:!=value` - not equals',
        '`field:>value`, `field:>=value`, `field:<value`, `field:<=value` - ordering',
        '',
        '## Text',
        '`field:contains:"text"` - contains text',
        '`field:startswith:text`, `field:endswith:text` - prefix / suffix',
        '`field:~"words"` - fuzzy: every word must appear',
        '',
        '## Lists and ranges',
        '`field:in:[a,b]`, `field:not_in:[a,b]` - membership',
        '`field:between:[a,b]` - inclusive numeric or date range',
        '',
        '## Presence',
        '`field:exists`, `field:null` - has / has no value',
        '`field:empty`, `field:notempty` - blank or empty vs. non-empty',
        '',
        '## Special values',
    ]
    for field, values in sorted(grammar.SPECIAL_VALUES.items()):
        lines.append(f"`{field}`: {', '.join(sorted(values))}")
    return '\n'.join(lines)


def _examples_help() -> str:
    lines = ['**Query Examples**']
    for category, examples in grammar.QUERY_EXAMPLES.items():
        lines.append('')
        lines.append(f"## {category.replace('_', ' ').title()}")
        lines.extend(f'`{example}`' for example in examples)
    return '\n'.join(lines)


def _fields_help() -> str:
    lines = ['**Queryable Fields**']
    for entity_type, label in ENTITY_LABELS.items():
        lines.append('')
        lines.append(f'## {label}')
        for field, field_type in sorted(grammar.fields_for(entity_type).items()):
            lines.append(f'`{field}` ({field_type})')
    lines.append('')
    lines.append('## Aliases')
    for alias, field in sorted(grammar.FIELD_ALIASES.items()):
        lines.append(f'`{alias}` -> `{field}`')
    return '\n'.join(lines)


def _general_help() -> str:
    return '\n'.join([
        '**Advanced Query Overview**',
        '',
        'Search issues, user stories and tasks with a compact query language:',
        'filters, AND/OR/NOT, sorting, grouping and limits.',
        '',
        '## Help topics',
        '`syntax` - query structure and keywords',
        '`operators` - operators and special values',
        '`examples` - example queries',
        '`fields` - queryable fields per entity type',
    ])


HELP_TOPICS: Dict[str, Callable[[], str]] = {
    'syntax': _syntax_help,
    'operators': _operators_help,
    'examples': _examples_help,
    'fields': _fields_help,
}


def get_query_help(topic: Optional[str] = None) -> str:
    """Return help text for a topic, or a general overview.

    Raises:
        ValueError: If the topic is unknown
    """
    if not topic:
        return _general_help()
    builder = HELP_TOPICS.get(topic.lower())
    if builder is None:
        raise ValueError(f"Unknown help topic '{topic}'. Available: {', '.join(HELP_TOPICS)}")
    return builder()


def help_topics() -> List[str]:
    return list(HELP_TOPICS)
