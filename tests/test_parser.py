"""
Unit tests for the query tokenizer and parser.

Tests filter syntax, operator and value parsing, logical keywords,
trailing clauses, validation errors and query statistics.
"""

import dataclasses

import pytest

from taiga_query import (
    EntityType,
    FilterClause,
    Logic,
    QuerySyntaxError,
    SortDirection,
    get_query_stats,
    parse_query,
    resolve_entity_type,
)
from taiga_query.parser import BY, FIELD_EXPR, GROUP, LIMIT, LOGIC, ORDER, Tokenizer


class TestTokenizer:
    """Test cases for the quote-aware tokenizer."""

    def test_quoted_values_stay_in_one_token(self):
        """Test that whitespace inside quotes and brackets does not split tokens."""
        tokens = Tokenizer('milestone:"Sprint 3" AND tags:in:[a, b]').get_tokens()

        assert [t.type for t in tokens] == [FIELD_EXPR, LOGIC, FIELD_EXPR]
        assert tokens[0].value == 'milestone:"Sprint 3"'
        assert tokens[2].value == 'tags:in:[a, b]'
        assert tokens[2].position == 25

    def test_keywords_are_case_insensitive(self):
        """Test that logic keywords are normalized to upper case."""
        tokens = Tokenizer('status:new and priority:high').get_tokens()
        assert tokens[1].type == LOGIC
        assert tokens[1].value == 'AND'

    def test_unterminated_quote(self):
        """Test that an unterminated string literal is rejected."""
        with pytest.raises(QuerySyntaxError) as exc_info:
            Tokenizer('subject:"login bug')
        assert 'Unterminated' in str(exc_info.value)
        assert exc_info.value.position == 8

    def test_unclosed_list(self):
        """Test that an unclosed list literal is rejected."""
        with pytest.raises(QuerySyntaxError):
            Tokenizer('tags:in:[a,b')

    def test_single_quoted_values_stay_in_one_token(self):
        """Test that single quotes group words like double quotes do."""
        tokens = Tokenizer("subject:'login bug' OR subject:contains:'dark mode'").get_tokens()

        assert [t.type for t in tokens] == [FIELD_EXPR, LOGIC, FIELD_EXPR]
        assert tokens[0].value == "subject:'login bug'"
        assert tokens[2].value == "subject:contains:'dark mode'"

    def test_apostrophe_inside_word(self):
        """Test that an apostrophe inside a bare word is not a quote."""
        tokens = Tokenizer("subject:don't AND status:open").get_tokens()
        assert [t.value for t in tokens] == ["subject:don't", 'AND', 'status:open']

    def test_unterminated_single_quote(self):
        """Test that an unterminated single-quoted literal is rejected."""
        with pytest.raises(QuerySyntaxError) as exc_info:
            Tokenizer("subject:'login bug")
        assert exc_info.value.position == 8

    @pytest.mark.parametrize('word,token_type', [
        ('order', ORDER),
        ('GROUP', GROUP),
        ('Limit', LIMIT),
        ('by', BY),
    ])
    def test_clause_keywords(self, word, token_type):
        """Test that clause keywords get their own token types."""
        token = Tokenizer(word).get_tokens()[0]
        assert token.type == token_type
        assert token.value == word.upper()


class TestFilterParsing:
    """Test cases for filter expressions."""

    def test_parse_simple_filter(self):
        """Test parsing a field:value filter with implicit equality."""
        spec = parse_query('status:open', 'issues')

        assert spec.entity_type == EntityType.ISSUE
        assert spec.filters == (FilterClause('status', '=', 'open'),)
        assert spec.logic == Logic.AND
        assert spec.order_by is None
        assert spec.limit is None
        assert spec.group_by is None

    @pytest.mark.parametrize('query,field,value', [
        ('priority:high', 'priority', 'high'),
        ('assignee:john', 'assignee', 'john'),
        ('ref:42', 'ref', 42),
        ('subject:"42"', 'subject', '42'),
        ('tags:frontend', 'tags', 'frontend'),
    ])
    def test_default_operator_is_equality(self, query, field, value):
        """Test that field:value defaults to the = operator."""
        spec = parse_query(query, 'issues')
        assert spec.filters == (FilterClause(field, '=', value),)

    @pytest.mark.parametrize('query,operator,value', [
        ('points:>=5', '>=', 5),
        ('points:>=:5', '>=', 5),
        ('points:<3.5', '<', 3.5),
        ('points:!=8', '!=', 8),
        ('subject:contains:"login bug"', 'contains', 'login bug'),
        ('subject:startswith:Sign', 'startswith', 'Sign'),
        ('subject:ends_with:page', 'endswith', 'page'),
        ('subject:~"login bug"', '~', 'login bug'),
        ("subject:contains:'login bug'", 'contains', 'login bug'),
        ("subject:'dark mode'", '=', 'dark mode'),
        ("subject:don't", '=', "don't"),
        ("tags:in:['a b', c]", 'in', ('a b', 'c')),
        ("subject:*'dark mode'*", 'contains', 'dark mode'),
        ('tags:in:[frontend, backend]', 'in', ('frontend', 'backend')),
        ('tags:not_in:["a b",c]', 'not_in', ('a b', 'c')),
        ('points:between:[3,8]', 'between', (3, 8)),
        ('assignee:exists', 'exists', None),
        ('assignee:null', 'null', None),
        ('assignee:empty', 'empty', None),
        ('description:notempty', 'notempty', None),
    ])
    def test_operators(self, query, operator, value):
        """Test parsing of explicit operators."""
        spec = parse_query(query, 'user_stories')
        assert spec.filters[0].operator == operator
        assert spec.filters[0].value == value

    def test_range_sugar(self):
        """Test that a..b is parsed as between."""
        spec = parse_query('points:3..8', 'user_stories')
        assert spec.filters[0] == FilterClause('points', 'between', (3, 8))

    def test_date_range_sugar(self):
        """Test range sugar with dates."""
        spec = parse_query('created:2024-01-01..2024-12-31', 'issues')
        assert spec.filters[0] == FilterClause('created', 'between', ('2024-01-01', '2024-12-31'))

    @pytest.mark.parametrize('query,operator,value', [
        ('subject:*API*', 'contains', 'API'),
        ('subject:log*', 'startswith', 'log'),
        ('subject:*bug', 'endswith', 'bug'),
        ('assignee:*', 'exists', None),
        ('milestone:*', '=', '*'),
    ])
    def test_wildcards(self, query, operator, value):
        """Test wildcard sugar."""
        spec = parse_query(query, 'user_stories')
        assert spec.filters[0].operator == operator
        assert spec.filters[0].value == value

    def test_timestamp_value_with_colons(self):
        """Test that ISO timestamps containing colons parse as values."""
        spec = parse_query('created:2024-01-01T10:00:00Z', 'issues')
        assert spec.filters[0] == FilterClause('created', '=', '2024-01-01T10:00:00Z')

        spec = parse_query('created:>2024-01-01T10:00:00', 'issues')
        assert spec.filters[0] == FilterClause('created', '>', '2024-01-01T10:00:00')

    def test_time_keywords(self):
        """Test relative time keywords on date fields."""
        spec = parse_query('updated:>7d AND created:>=this_week', 'issues')
        assert spec.filters[0].value == '7d'
        assert spec.filters[1].value == 'this_week'

    def test_field_aliases(self):
        """Test that aliases resolve to canonical field names."""
        spec = parse_query('sprint:"Sprint 3" AND is_blocked:true AND created_by:alice', 'user_stories')
        assert [c.field for c in spec.filters] == ['milestone', 'blocked', 'owner']
        assert spec.filters[0].value == 'Sprint 3'

    def test_boolean_values_are_normalized(self):
        """Test that boolean operands are lower-cased."""
        spec = parse_query('blocked:TRUE', 'issues')
        assert spec.filters[0].value == 'true'

    def test_field_names_are_case_insensitive(self):
        """Test that field names are lower-cased."""
        spec = parse_query('Status:open', 'issues')
        assert spec.filters[0].field == 'status'


class TestLogic:
    """Test cases for AND / OR / NOT."""

    def test_and(self):
        """Test AND across filters."""
        spec = parse_query('status:open AND priority:high', 'issues')
        assert spec.logic == Logic.AND
        assert len(spec.filters) == 2

    def test_or(self):
        """Test OR across filters."""
        spec = parse_query('type:bug OR type:feature', 'issues')
        assert spec.logic == Logic.OR
        assert [c.value for c in spec.filters] == ['bug', 'feature']

    def test_implicit_and(self):
        """Test that adjacent filters are joined with AND."""
        spec = parse_query('status:open priority:high', 'issues')
        assert spec.logic == Logic.AND
        assert len(spec.filters) == 2

    def test_mixed_logic_rejected(self):
        """Test that mixing AND and OR is rejected."""
        with pytest.raises(QuerySyntaxError) as exc_info:
            parse_query('status:open AND priority:high OR type:bug', 'issues')
        assert exc_info.value.fragment == 'OR'

    def test_implicit_and_with_or_rejected(self):
        """Test that an implicit AND cannot be combined with OR."""
        with pytest.raises(QuerySyntaxError):
            parse_query('status:open priority:high OR type:bug', 'issues')

    @pytest.mark.parametrize('query,operator', [
        ('NOT status:closed', '!='),
        ('NOT status:!=closed', '='),
        ('NOT subject:contains:login', 'not_contains'),
        ('NOT tags:in:[a,b]', 'not_in'),
        ('NOT assignee:null', 'exists'),
        ('NOT assignee:empty', 'notempty'),
        ('NOT ref:>5', 'not_gt'),
        ('NOT ref:between:[1,5]', 'not_between'),
        ('NOT subject:~login', '!~'),
    ])
    def test_not_negates_operator(self, query, operator):
        """Test that NOT is folded into the clause operator."""
        spec = parse_query(query, 'issues')
        assert spec.filters[0].operator == operator

    def test_not_applies_to_single_filter(self):
        """Test that NOT only negates the following filter."""
        spec = parse_query('status:open AND NOT priority:low', 'issues')
        assert [c.operator for c in spec.filters] == ['=', '!=']

    @pytest.mark.parametrize('query', [
        'status:open AND',
        'AND status:open',
        'status:open AND AND priority:high',
        'NOT NOT status:open',
        'status:open NOT',
        'status:open AND LIMIT 5',
    ])
    def test_dangling_keywords(self, query):
        """Test that misplaced logic keywords are rejected."""
        with pytest.raises(QuerySyntaxError):
            parse_query(query, 'issues')

    def test_parentheses_rejected(self):
        """Test that parenthesized grouping is rejected rather than ignored."""
        with pytest.raises(QuerySyntaxError) as exc_info:
            parse_query('(status:open OR status:new) AND priority:high', 'issues')
        assert 'Parenthesized' in str(exc_info.value)


class TestClauses:
    """Test cases for ORDER BY, GROUP BY and LIMIT."""

    def test_order_by(self):
        """Test ORDER BY with direction."""
        spec = parse_query('status:open ORDER BY priority DESC', 'issues')
        assert spec.order_by.field == 'priority'
        assert spec.order_by.direction == SortDirection.DESC

    def test_order_by_defaults_to_ascending(self):
        """Test that ORDER BY without direction sorts ascending."""
        spec = parse_query('status:open ORDER BY created', 'issues')
        assert spec.order_by.direction == SortDirection.ASC

    def test_clauses_in_any_order(self):
        """Test that trailing clauses may appear in any order."""
        spec = parse_query('status:open LIMIT 2 ORDER BY created DESC', 'issues')
        assert spec.limit == 2
        assert spec.order_by.field == 'created'
        assert spec.order_by.direction == SortDirection.DESC

    def test_lower_case_clauses(self):
        """Test lower-case clause keywords."""
        spec = parse_query('status:open order by created desc group by assignee limit 5', 'issues')
        assert spec.order_by.direction == SortDirection.DESC
        assert spec.group_by == 'assignee'
        assert spec.limit == 5

    def test_clause_field_aliases(self):
        """Test that ORDER BY and GROUP BY resolve aliases."""
        spec = parse_query('points:>1 ORDER BY sprint GROUP BY assigned', 'user_stories')
        assert spec.order_by.field == 'milestone'
        assert spec.group_by == 'assignee'

    def test_clauses_without_filters(self):
        """Test a query made only of trailing clauses."""
        spec = parse_query('ORDER BY created DESC LIMIT 3', 'issues')
        assert spec.filters == ()
        assert spec.limit == 3

    @pytest.mark.parametrize('query', [
        'status:open LIMIT 0',
        'status:open LIMIT -1',
        'status:open LIMIT abc',
        'status:open LIMIT',
        'status:open LIMIT 5 LIMIT 6',
        'status:open ORDER BY',
        'status:open ORDER created',
        'status:open ORDER BY nonexistent',
        'status:open GROUP BY nonexistent',
        'status:open ORDER BY created DESC ORDER BY updated',
        'status:open LIMIT 5 priority:high',
        'status:open ORDER BY created sideways',
    ])
    def test_invalid_clauses(self, query):
        """Test clause validation errors."""
        with pytest.raises(QuerySyntaxError):
            parse_query(query, 'issues')


class TestValidationErrors:
    """Test cases for syntax and validation errors."""

    @pytest.mark.parametrize('query', ['', '   ', '\t\n'])
    def test_empty_query(self, query):
        """Test that empty queries are rejected."""
        with pytest.raises(QuerySyntaxError):
            parse_query(query, 'issues')

    def test_malformed_symbol_operator(self):
        """Test that an unknown symbolic operator is reported."""
        with pytest.raises(QuerySyntaxError) as exc_info:
            parse_query('points:>>5', 'issues')
        assert exc_info.value.fragment == '>>'
        assert exc_info.value.position == 7
        assert '>>' in str(exc_info.value)

    def test_unknown_named_operator(self):
        """Test that an unknown operator name is reported."""
        with pytest.raises(QuerySyntaxError) as exc_info:
            parse_query('subject:containz:"x"', 'issues')
        assert exc_info.value.fragment == 'containz'

    def test_unknown_field(self):
        """Test that unknown fields are rejected."""
        with pytest.raises(QuerySyntaxError) as exc_info:
            parse_query('status:open AND foo:bar', 'issues')
        assert exc_info.value.fragment == 'foo'
        assert exc_info.value.position == 16

    def test_field_not_in_entity_catalogue(self):
        """Test that fields are validated per entity type."""
        with pytest.raises(QuerySyntaxError):
            parse_query('points:5', 'issues')
        with pytest.raises(QuerySyntaxError):
            parse_query('severity:minor', 'tasks')
        parse_query('user_story:null', 'tasks')

    @pytest.mark.parametrize('query', [
        'points:contains:5',
        'blocked:>true',
        'created:startswith:2024',
        'subject:between:[a,b]',
        'tags:>3',
    ])
    def test_incompatible_operator(self, query):
        """Test that operators are checked against the field type."""
        with pytest.raises(QuerySyntaxError):
            parse_query(query, 'user_stories')

    @pytest.mark.parametrize('query', [
        'points:>abc',
        'points:between:[1,x]',
        'created:>someday',
        'blocked:maybe',
    ])
    def test_invalid_operand(self, query):
        """Test that operands are checked against the field type."""
        with pytest.raises(QuerySyntaxError):
            parse_query(query, 'user_stories')

    @pytest.mark.parametrize('query', [
        'points:between:[3]',
        'points:between:[1,2,3]',
        'points:between:5',
        'tags:in:[a,,b]',
        'tags:in:frontend',
        'status:=[a,b]',
        'tags:in:[[a]]',
        'subject:"abc"def',
        'subject:ab"c',
        'subject:',
        'subject:contains:',
        'assignee:empty:yes',
    ])
    def test_malformed_values(self, query):
        """Test malformed lists, ranges and literals."""
        with pytest.raises(QuerySyntaxError):
            parse_query(query, 'user_stories')

    def test_unexpected_token(self):
        """Test that bare words are rejected."""
        with pytest.raises(QuerySyntaxError) as exc_info:
            parse_query('status:open urgent', 'issues')
        assert exc_info.value.fragment == 'urgent'

    def test_error_code(self):
        """Test that syntax errors carry their error code."""
        with pytest.raises(QuerySyntaxError) as exc_info:
            parse_query('', 'issues')
        assert exc_info.value.error_code == 'TQ001'


class TestQuerySpec:
    """Test cases for the parsed query object."""

    def test_spec_is_immutable(self):
        """Test that a parsed QuerySpec cannot be modified."""
        spec = parse_query('status:open', 'issues')
        with pytest.raises(dataclasses.FrozenInstanceError):
            spec.limit = 5

    def test_spec_keeps_text(self):
        """Test that the original query text is kept."""
        spec = parse_query('status:open LIMIT 1', 'issues')
        assert spec.text == 'status:open LIMIT 1'

    def test_to_dict(self):
        """Test dictionary conversion of a parsed query."""
        spec = parse_query('tags:in:[a,b] ORDER BY created DESC', 'issues')
        data = spec.to_dict()
        assert data['entity_type'] == 'ISSUE'
        assert data['filters'] == [{'field': 'tags', 'operator': 'in', 'value': ['a', 'b']}]
        assert data['order_by'] == {'field': 'created', 'direction': 'DESC'}

    @pytest.mark.parametrize('name,expected', [
        ('issues', EntityType.ISSUE),
        ('issue', EntityType.ISSUE),
        ('user_stories', EntityType.USER_STORY),
        ('USER_STORY', EntityType.USER_STORY),
        ('tasks', EntityType.TASK),
        (EntityType.TASK, EntityType.TASK),
    ])
    def test_resolve_entity_type(self, name, expected):
        """Test entity type name resolution."""
        assert resolve_entity_type(name) == expected

    def test_unsupported_entity_type(self):
        """Test that unknown entity types are rejected."""
        with pytest.raises(QuerySyntaxError):
            parse_query('status:open', 'epics')


class TestQueryStats:
    """Test cases for query statistics."""

    def test_basic_stats(self):
        """Test counts and weighted complexity."""
        spec = parse_query('status:open AND priority:high ORDER BY created DESC LIMIT 10', 'issues')
        stats = get_query_stats(spec)

        assert stats.filter_count == 2
        assert stats.logic == Logic.AND
        assert stats.has_order_by
        assert stats.has_limit
        assert not stats.has_group_by
        assert stats.complexity == pytest.approx(3.7)
        assert stats.fields == ['status', 'priority']
        assert stats.operators == {'=': 2}

    def test_text_and_date_weights(self):
        """Test that text searches and date ranges weigh more than plain filters."""
        spec = parse_query('subject:contains:login AND created:>7d GROUP BY assignee', 'issues')
        stats = get_query_stats(spec)
        assert stats.complexity == pytest.approx(1.5 + 1.2 + 0.5 + 2.0)

    def test_unknown_enum_value_warning(self):
        """Test warnings for values outside the known enum vocabulary."""
        spec = parse_query('status:open AND priority:high AND type:bogus', 'issues')
        stats = get_query_stats(spec)

        assert len(stats.warnings) == 2
        assert any("'open'" in w for w in stats.warnings)
        assert any("'bogus'" in w for w in stats.warnings)

    def test_max_complexity(self):
        """Test the complexity threshold flag."""
        spec = parse_query('status:new AND priority:high ORDER BY created', 'issues')
        assert get_query_stats(spec, max_complexity=2).exceeds_max_complexity
        assert not get_query_stats(spec, max_complexity=10).exceeds_max_complexity
        assert not get_query_stats(spec).exceeds_max_complexity
