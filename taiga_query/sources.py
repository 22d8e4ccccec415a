"""
Record sources consumed by the query executor.

A RecordSource returns complete record collections (pagination already
resolved) for a project. ``TaigaClient`` implements it over the Taiga REST
API; ``InMemoryRecordSource`` serves records loaded from memory or a JSON
export for offline queries.
"""

import json
from pathlib import Path
from typing import Any, List, Optional, Protocol, runtime_checkable

from .models import Record


class RecordSource(Protocol):
    """Data-access collaborator for the executor."""

    async def list_issues(self, project_id: Any) -> List[Record]:
        ...

    async def list_user_stories(self, project_id: Any) -> List[Record]:
        ...

    async def list_tasks(self, user_story_id: Any) -> List[Record]:
        ...


@runtime_checkable
class ProjectLookup(Protocol):
    """Optional capability: resolve a project slug to a project record."""

    async def get_project_by_slug(self, slug: str) -> Record:
        ...


class InMemoryRecordSource:
    """Serves records held in memory.

    Records are returned regardless of project id unless they carry a
    ``project`` key, in which case only matching records are returned.
    """

    def __init__(
        self,
        issues: Optional[List[Record]] = None,
        user_stories: Optional[List[Record]] = None,
        tasks: Optional[List[Record]] = None,
        projects: Optional[List[Record]] = None,
    ):
        self.issues = list(issues or [])
        self.user_stories = list(user_stories or [])
        self.tasks = list(tasks or [])
        self.projects = list(projects or [])

    @classmethod
    def from_file(cls, path: str) -> 'InMemoryRecordSource':
        """Load records from a JSON file.

        The file holds an object with optional ``issues``, ``user_stories``,
        ``tasks`` and ``projects`` arrays.

        Raises:
            ValueError: If the file does not contain a JSON object
        """
        with open(Path(path), 'r', encoding='utf-8') as f:
            data = json.load(f)

        if not isinstance(data, dict):
            raise ValueError(f"Records file {path} must contain a JSON object")

        return cls(
            issues=data.get('issues'),
            user_stories=data.get('user_stories'),
            tasks=data.get('tasks'),
            projects=data.get('projects'),
        )

    async def list_issues(self, project_id: Any) -> List[Record]:
        return _for_project(self.issues, project_id)

    async def list_user_stories(self, project_id: Any) -> List[Record]:
        return _for_project(self.user_stories, project_id)

    async def list_tasks(self, user_story_id: Any) -> List[Record]:
        return [
            task for task in self.tasks
            if str(task.get('user_story')) == str(user_story_id)
        ]

    async def get_project_by_slug(self, slug: str) -> Record:
        for project in self.projects:
            if project.get('slug') == slug:
                return project
        raise LookupError(f"Project '{slug}' not found")


def _for_project(records: List[Record], project_id: Any) -> List[Record]:
    return [
        record for record in records
        if 'project' not in record or project_id is None
        or str(record['project']) == str(project_id)
    ]
