"""
dictionaryapi.dev lookup adapter.

GET {base_url}/{word}

Classification (no retries, no backoff):
- blank word / unbuildable URL   -> LOOKUP_INVALID_INPUT
- HTTP 404                       -> LOOKUP_NOT_FOUND
- any other non-200              -> LOOKUP_NETWORK
- transport error / timeout      -> LOOKUP_NETWORK
- empty body                     -> LOOKUP_UNAVAILABLE
- body not JSON / wrong shape    -> LOOKUP_DECODE
- empty entry list               -> LOOKUP_NOT_FOUND

Only the first entry of the returned array is used.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable
from urllib.parse import quote

import aiohttp

from adapters.errors import LookupFailure
from adapters.lookup.base import LookupAdapter
from constants import DICTIONARY_BASE_URL_DEFAULT, LOOKUP_HTTP_TIMEOUT_S
from dictionary.models import Definition
from dictionary.serialization import DefinitionDecodeError, parse_first_definition
from observability.metrics import timed
from orchestrator.errors import ErrorKind


def build_url(base_url: str, word: str) -> str:
    """Lower-cased, path-quoted word appended to the base URL."""
    cleaned = word.strip().lower()
    if not cleaned:
        raise LookupFailure(ErrorKind.LOOKUP_INVALID_INPUT, "empty word")
    return f"{base_url.rstrip('/')}/{quote(cleaned, safe='')}"


def classify_status(status: int) -> ErrorKind | None:
    """None for 200, otherwise the failure kind."""
    if status == 200:
        return None
    if status == 404:
        return ErrorKind.LOOKUP_NOT_FOUND
    return ErrorKind.LOOKUP_NETWORK


def parse_body(body: bytes) -> Definition:
    """Decode a 200 response body into the first Definition."""
    if not body:
        raise LookupFailure(ErrorKind.LOOKUP_UNAVAILABLE, "empty response body")

    try:
        payload: Any = json.loads(body)
        definition = parse_first_definition(payload)
    except (ValueError, DefinitionDecodeError) as exc:
        # json.JSONDecodeError and UnicodeDecodeError are ValueErrors
        raise LookupFailure(ErrorKind.LOOKUP_DECODE, str(exc)) from exc

    if definition is None:
        raise LookupFailure(ErrorKind.LOOKUP_NOT_FOUND, "no entries")
    return definition


class DictionaryAPILookupAdapter(LookupAdapter):
    """
    aiohttp client for the free dictionary API.

    One ClientSession is created lazily and reused for the session's
    lifetime; close() releases it.
    """

    def __init__(
        self,
        *,
        base_url: str = DICTIONARY_BASE_URL_DEFAULT,
        session_id: str | None = None,
        timeout_s: float = LOOKUP_HTTP_TIMEOUT_S,
        session_factory: Callable[[], aiohttp.ClientSession] | None = None,
    ) -> None:
        self._base_url = base_url
        self._session_id = session_id
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)
        self._session_factory = session_factory
        self._session: aiohttp.ClientSession | None = None

    async def fetch(self, word: str) -> Definition:
        url = build_url(self._base_url, word)
        session = self._ensure_session()

        with timed(
            "lookup_latency",
            session_id=self._session_id,
            details={"word": word},
        ):
            try:
                async with session.get(url, timeout=self._timeout) as response:
                    kind = classify_status(response.status)
                    if kind is not None:
                        raise LookupFailure(kind, f"HTTP {response.status}")
                    body = await response.read()
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                raise LookupFailure(ErrorKind.LOOKUP_NETWORK, repr(exc)) from exc

        return parse_body(body)

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            factory = self._session_factory or aiohttp.ClientSession
            self._session = factory()
        return self._session
