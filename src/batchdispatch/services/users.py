"""
Read access to the JSONPlaceholder users resource through a dispatcher client.
"""

from __future__ import annotations

import json
import typing as t

import httpx
import structlog

from batchdispatch.api import request
from batchdispatch.dispatcher import Client
from batchdispatch.models import ResponseRecord

log = structlog.get_logger(__name__)

JSON_PLACEHOLDER_USERS_URL = "https://jsonplaceholder.typicode.com/users"


class JsonPlaceholderUsers:
    """
    Users read service backed by ``jsonplaceholder.typicode.com``.

    Parameters
    ----------
    client : Client
        Dispatcher used to issue the requests.
    base_url : str, optional
        Users collection endpoint.

    Notes
    -----
    Transport and decoding errors are logged and turned into empty results,
    so callers never see a half-decoded payload.
    """

    def __init__(self, client: Client, base_url: str = JSON_PLACEHOLDER_USERS_URL) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")

    async def users(self, limit: int, offset: int = 0) -> list[dict[str, t.Any]]:
        [data] = await self._fetch_many([("", {"_limit": limit, "_start": offset})])
        return data if isinstance(data, list) else []

    async def user_by_id(self, user_id: int) -> dict[str, t.Any]:
        [data] = await self._fetch_many([(f"/{user_id}", {})])
        return data if isinstance(data, dict) else {}

    async def users_by_ids(self, user_ids: t.Sequence[int]) -> list[dict[str, t.Any]]:
        """
        Fetch several users in one concurrent batch.

        Parameters
        ----------
        user_ids : typing.Sequence[int]
            Identifiers to fetch.

        Returns
        -------
        list[dict[str, typing.Any]]
            One entry per identifier, ``{}`` for users that could not be read.
        """
        payloads = await self._fetch_many([(f"/{user_id}", {}) for user_id in user_ids])
        return [data if isinstance(data, dict) else {} for data in payloads]

    def _build_url(self, *, path: str, params: dict[str, t.Any]) -> str:
        return str(object=httpx.URL(f"{self._base_url}{path}", params=params or None))

    async def _fetch_many(self, items: t.Sequence[tuple[str, dict[str, t.Any]]]) -> list[t.Any]:
        urls = [self._build_url(path=path, params=params) for path, params in items]
        responses = await self._client.resolve([_get_request(url=url) for url in urls])
        return [self._decode(response=response) for response in responses]

    @staticmethod
    def _decode(*, response: t.Any) -> t.Any:
        if not isinstance(response, ResponseRecord):
            log.warning(event="Unexpected response type", response_type=type(response).__name__)
            return None
        if response.error is not None:
            log.warning(
                event="Users request failed",
                url=response.url,
                status=response.status,
                error=response.error.message,
            )
            return None
        try:
            return json.loads(response.body)
        except json.JSONDecodeError as error:
            log.warning(event="Users payload is not valid JSON", url=response.url, error=str(object=error))
            return None


def _get_request(*, url: str) -> t.Callable[[], t.Awaitable[t.Any]]:
    def issue() -> t.Awaitable[t.Any]:
        return request("GET", url)

    return issue
