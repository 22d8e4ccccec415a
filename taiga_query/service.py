"""
Caller-facing query service.

Ties the parser and the executor together behind ``search`` and
``validate``. Queries are always parsed before the record source is touched,
so invalid input never causes network access.
"""

import asyncio
import logging
from typing import Any, Optional, Union

from .config import Settings
from .engine import QueryExecutor
from .exceptions import QueryExecutionError
from .models import EntityType, QuerySpec, QueryStats, ResultSet
from .parser import get_query_stats, parse_query, resolve_entity_type
from .sources import ProjectLookup, RecordSource


logger = logging.getLogger(__name__)


class QueryService:
    """Parses and executes queries against a RecordSource."""

    def __init__(self, source: RecordSource, settings: Optional[Settings] = None, clock=None):
        self.source = source
        self.settings = settings or Settings()
        self.executor = QueryExecutor(
            source,
            clock=clock,
            task_fetch_concurrency=self.settings.task_fetch_concurrency,
        )

    def validate(self, query_text: str, entity_type: Union[EntityType, str] = EntityType.ISSUE) -> QuerySpec:
        """Parse a query without executing it.

        Raises:
            QuerySyntaxError: If the query is invalid
        """
        return parse_query(query_text, entity_type)

    def stats(self, spec: QuerySpec) -> QueryStats:
        return get_query_stats(spec, self.settings.max_complexity)

    async def search(
        self,
        project_id: Any,
        query_text: str,
        entity_type: Union[EntityType, str] = EntityType.ISSUE,
    ) -> ResultSet:
        """Parse and execute a query against one project.

        Args:
            project_id: Project identifier passed to the record source
            query_text: Query string
            entity_type: ``issues``, ``user_stories``, ``tasks`` or an EntityType

        Returns:
            ResultSet with results and execution metadata

        Raises:
            QuerySyntaxError: If the query is invalid (nothing is fetched)
            QueryExecutionError: If fetching fails or the query times out
        """
        spec = parse_query(query_text, entity_type)
        logger.debug(f"Executing {spec.entity_type.value} query on project {project_id}: {query_text}")

        try:
            return await asyncio.wait_for(
                self.executor.execute(spec, project_id),
                timeout=self.settings.query_timeout,
            )
        except asyncio.TimeoutError as e:
            raise QueryExecutionError('Query execution failed: Query execution timeout') from e

    async def resolve_project(self, identifier: Union[int, str]) -> Any:
        """Resolve a project id or slug to the id the record source expects.

        Numeric identifiers pass through. Slugs are looked up through the
        source when it supports ``get_project_by_slug``.

        Raises:
            QueryExecutionError: If a slug cannot be resolved
        """
        if isinstance(identifier, int) or str(identifier).strip().isdigit():
            return int(identifier)

        if not isinstance(self.source, ProjectLookup):
            return identifier

        try:
            project = await self.source.get_project_by_slug(str(identifier))
        except Exception as e:
            raise QueryExecutionError(f"Query execution failed: unknown project '{identifier}': {e}") from e
        return project.get('id', identifier)


__all__ = ['QueryService', 'resolve_entity_type']
