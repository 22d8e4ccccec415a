"""
Async Taiga REST API client.

Implements the RecordSource protocol over ``httpx.AsyncClient``: token
authentication, transparent pagination, and a single re-authentication
retry when the API answers 401.
"""

import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from .config import Settings
from .exceptions import TaigaAPIError
from .models import Record


logger = logging.getLogger(__name__)

TOKEN_LIFETIME_SECONDS = 24 * 60 * 60


class TaigaClient:
    """Fetches issues, user stories and tasks from the Taiga API."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            settings: Connection settings; defaults to ``Settings()``
            transport: Optional httpx transport (tests pass ``httpx.MockTransport``)
        """
        self.settings = settings or Settings()
        self._http = httpx.AsyncClient(
            base_url=self.settings.api_url,
            timeout=self.settings.request_timeout,
            transport=transport,
            headers={'Content-Type': 'application/json'},
        )
        self._token: Optional[str] = self.settings.auth_token
        self._token_expires: Optional[float] = None

    async def __aenter__(self) -> 'TaigaClient':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    @property
    def is_authenticated(self) -> bool:
        if not self._token:
            return False
        return self._token_expires is None or time.time() < self._token_expires

    async def authenticate(self) -> str:
        """Log in with username and password and store the auth token.

        Returns:
            The auth token

        Raises:
            TaigaAPIError: If credentials are missing or rejected
        """
        if not self.settings.username or not self.settings.password:
            raise TaigaAPIError('Taiga username and password are required for authentication')

        try:
            response = await self._http.post('/auth', json={
                'type': 'normal',
                'username': self.settings.username,
                'password': self.settings.password,
            })
        except httpx.HTTPError as e:
            raise TaigaAPIError(f"Authentication request failed: {e}") from e

        if response.status_code >= 400:
            raise TaigaAPIError(
                f"Authentication failed: {_error_detail(response)}",
                status_code=response.status_code,
            )

        token = response.json().get('auth_token')
        if not token:
            raise TaigaAPIError('Authentication response did not contain an auth token')

        self._token = token
        self._token_expires = time.time() + TOKEN_LIFETIME_SECONDS
        logger.info(f"Authenticated with Taiga as {self.settings.username}")
        return token

    async def _ensure_token(self) -> str:
        if not self.is_authenticated:
            await self.authenticate()
        return self._token

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        """Issue an authenticated GET, re-authenticating once on 401."""
        for attempt in range(2):
            token = await self._ensure_token()
            try:
                response = await self._http.get(
                    path,
                    params=params,
                    headers={'Authorization': f'Bearer {token}'},
                )
            except httpx.HTTPError as e:
                raise TaigaAPIError(f"Request to {path} failed: {e}") from e

            if response.status_code == 401 and attempt == 0:
                logger.info('Taiga token rejected, re-authenticating')
                self._token = None
                self._token_expires = None
                continue

            if response.status_code >= 400:
                raise TaigaAPIError(
                    f"Taiga API error on {path}: {_error_detail(response)}",
                    status_code=response.status_code,
                )
            return response

        raise TaigaAPIError(f"Taiga API error on {path}: unauthorized", status_code=401)

    async def fetch_all_pages(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> List[Record]:
        """Fetch every page of a paginated list endpoint.

        Stops on an empty page, a short page, or once ``x-pagination-count``
        records have been collected.
        """
        page_size = self.settings.page_size
        results: List[Record] = []
        page = 1

        while True:
            response = await self._get(path, {**(params or {}), 'page': page, 'page_size': page_size})
            items = response.json()
            logger.debug(f"Fetched page {page} of {path}: {len(items or [])} items")

            if not items:
                break
            results.extend(items)

            if len(items) < page_size:
                break

            total = response.headers.get('x-pagination-count')
            if total and total.isdigit() and len(results) >= int(total):
                break

            page += 1

        return results

    async def list_issues(self, project_id: Any) -> List[Record]:
        return await self.fetch_all_pages('/issues', {'project': project_id})

    async def list_user_stories(self, project_id: Any) -> List[Record]:
        return await self.fetch_all_pages('/userstories', {'project': project_id})

    async def list_tasks(self, user_story_id: Any) -> List[Record]:
        return await self.fetch_all_pages('/tasks', {'user_story': user_story_id})

    async def get_project_by_slug(self, slug: str) -> Record:
        response = await self._get('/projects/by_slug', {'slug': slug})
        return response.json()


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get('_error_message'):
        return f"HTTP {response.status_code} - {body['_error_message']}"
    return f"HTTP {response.status_code}"
