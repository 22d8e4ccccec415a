"""
Shared fixtures for the Taiga query engine tests.

Records mirror the shapes returned by Taiga list endpoints: flat ids
alongside ``*_extra_info`` objects.
"""

import asyncio
from datetime import datetime, timezone

import pytest

from taiga_query.sources import InMemoryRecordSource


NOW = datetime(2024, 6, 12, 12, 0, tzinfo=timezone.utc)


class RecordingSource(InMemoryRecordSource):
    """In-memory source that records every call and can inject failures."""

    def __init__(self, *args, failing_stories=(), fail_with=None, delay=0.0, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = []
        self.failing_stories = set(failing_stories)
        self.fail_with = fail_with
        self.delay = delay

    async def _before(self, name, arg):
        self.calls.append((name, arg))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with

    async def list_issues(self, project_id):
        await self._before('list_issues', project_id)
        return await super().list_issues(project_id)

    async def list_user_stories(self, project_id):
        await self._before('list_user_stories', project_id)
        return await super().list_user_stories(project_id)

    async def list_tasks(self, user_story_id):
        self.calls.append(('list_tasks', user_story_id))
        if user_story_id in self.failing_stories:
            raise RuntimeError(f"tasks for story {user_story_id} unavailable")
        return await super().list_tasks(user_story_id)


def make_issue(issue_id, status, priority, created, **extra):
    issue = {
        'id': issue_id,
        'ref': issue_id,
        'subject': f'Issue {issue_id}',
        'status': issue_id * 10,
        'status_extra_info': {'name': status, 'id': issue_id * 10},
        'priority': 3,
        'priority_extra_info': {'name': priority, 'id': 3},
        'created_date': created,
        'modified_date': created,
        'is_blocked': False,
        'is_closed': status == 'closed',
        'tags': [],
    }
    issue.update(extra)
    return issue


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def issues():
    """Five issues: two open/high, one open/low, two closed/high."""
    return [
        make_issue(
            1, 'open', 'high', '2024-06-01T10:00:00Z',
            subject='Login button broken on Safari',
            assigned_to=7,
            assigned_to_extra_info={'id': 7, 'username': 'alice'},
            tags=[['frontend', '#f00'], ['urgent', None]],
        ),
        make_issue(
            2, 'open', 'low', '2024-06-03T10:00:00Z',
            subject='Typo in footer',
            assigned_to=None,
            tags=[['docs', None]],
        ),
        make_issue(
            3, 'closed', 'high', '2024-06-05T10:00:00Z',
            subject='API returns 500 on export',
            assigned_to=8,
            assigned_to_extra_info={'id': 8, 'username': 'bob'},
            tags=[['backend', '#0f0']],
        ),
        make_issue(
            4, 'open', 'high', '2024-06-07T10:00:00Z',
            subject='Slow dashboard load',
            assigned_to=8,
            assigned_to_extra_info={'id': 8, 'username': 'bob'},
            is_blocked=True,
        ),
        make_issue(
            5, 'closed', 'high', '2024-06-12T08:00:00Z',
            subject='Login redirect loop',
            assigned_to=7,
            assigned_to_extra_info={'id': 7, 'username': 'alice'},
        ),
    ]


@pytest.fixture
def user_stories():
    """Stories with points 1, 3, 5, 8 and 13."""
    return [
        {'id': 101, 'ref': 11, 'subject': 'Sign up', 'total_points': 1.0,
         'milestone': 142, 'milestone_slug': 's47-s48', 'created_date': '2024-05-01T00:00:00Z'},
        {'id': 102, 'ref': 12, 'subject': 'Sign in', 'total_points': 3.0,
         'milestone': None, 'created_date': '2024-05-02T00:00:00Z'},
        {'id': 103, 'ref': 13, 'subject': 'Reset password', 'total_points': 5.0,
         'milestone': None, 'created_date': '2024-05-03T00:00:00Z'},
        {'id': 104, 'ref': 14, 'subject': 'Profile page', 'total_points': 8.0,
         'milestone': 143, 'milestone_extra_info': {'id': 143, 'name': 'Sprint 49', 'slug': 's49'},
         'created_date': '2024-05-04T00:00:00Z'},
        {'id': 105, 'ref': 15, 'subject': 'Billing', 'total_points': 13.0,
         'milestone': None, 'created_date': '2024-05-05T00:00:00Z'},
    ]


@pytest.fixture
def tasks():
    """Three tasks across two stories, one unassigned."""
    return [
        {'id': 1001, 'ref': 21, 'subject': 'Write form', 'user_story': 101,
         'user_story_extra_info': {'id': 101, 'subject': 'Sign up', 'ref': 11},
         'assigned_to': 7, 'assigned_to_extra_info': {'id': 7, 'username': 'alice'}},
        {'id': 1002, 'ref': 22, 'subject': 'Validate email', 'user_story': 101,
         'user_story_extra_info': {'id': 101, 'subject': 'Sign up', 'ref': 11},
         'assigned_to': None},
        {'id': 1003, 'ref': 23, 'subject': 'Session cookie', 'user_story': 102,
         'user_story_extra_info': {'id': 102, 'subject': 'Sign in', 'ref': 12},
         'assigned_to': 8, 'assigned_to_extra_info': {'id': 8, 'username': 'bob'}},
    ]


@pytest.fixture
def source(issues, user_stories, tasks):
    return RecordingSource(issues=issues, user_stories=user_stories, tasks=tasks)
