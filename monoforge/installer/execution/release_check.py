"""Warn when the running monoforge release has been unpublished.

The registry answer is cached for a day in ``last-check.flag`` under the
global folder.  An ``"error"`` marker is written before the request so a
crash or hang is remembered as a failed check rather than retried every run.
"""

from __future__ import annotations

import json
import time
from functools import partial
from pathlib import Path

import httpx
from anyio import to_thread
from loguru import logger

from monoforge.installer import constants
from monoforge.installer.errors import TransientRetryExceededError
from monoforge.installer.store.files import atomic_write, read_text_or_none

CACHE_SECONDS = 24 * 60 * 60
REQUEST_ATTEMPTS = 3


def _cache_path(global_folder: Path, version: str) -> Path:
    return global_folder / f"{constants.PACKAGE_NAME}-{version}" / constants.LAST_CHECK_FLAG_FILENAME


def _read_cached(path: Path) -> bool | str | None:
    """Cached answer (``True``, ``False`` or ``"error"``), or ``None`` when stale or missing."""
    raw = read_text_or_none(path)
    if raw is None:
        return None
    try:
        age = time.time() - path.stat().st_mtime
        cached = json.loads(raw)
    except (OSError, json.JSONDecodeError):
        return None
    if age > CACHE_SECONDS or not isinstance(cached, dict):
        return None
    published = cached.get("published")
    return published if isinstance(published, bool) or published == "error" else None


async def check_release_published(
    global_folder: Path,
    version: str,
    *,
    registry_url: str,
    timeout: float,
    client: httpx.AsyncClient | None = None,
) -> bool | None:
    """Whether *version* of monoforge is still listed by the registry.

    ``None`` means a check in the last day failed and the answer is unknown.
    Raises ``TransientRetryExceededError`` when the registry can't be reached.
    """
    path = _cache_path(global_folder, version)
    cached = await to_thread.run_sync(partial(_read_cached, path))
    if cached == "error":
        return None
    if cached is not None:
        return cached

    await to_thread.run_sync(partial(atomic_write, path, json.dumps({"published": "error"}) + "\n"))

    url = f"{registry_url.rstrip('/')}/{constants.PACKAGE_NAME}"
    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=timeout)
    try:
        document = await _fetch_document(http, url)
    finally:
        if owns_client:
            await http.aclose()

    published = version in (document.get("versions") or {})
    await to_thread.run_sync(partial(atomic_write, path, json.dumps({"published": published}) + "\n"))
    return published


async def _fetch_document(client: httpx.AsyncClient, url: str) -> dict:
    last_error: Exception | None = None
    for attempt in range(1, REQUEST_ATTEMPTS + 1):
        try:
            response = await client.get(url, headers={"Accept": "application/json"})
            response.raise_for_status()
            return response.json()
        except (httpx.TransportError, httpx.HTTPStatusError) as exc:
            last_error = exc
            logger.debug("Release check attempt {} failed: {}", attempt, exc)
    msg = f"Unable to query {url} after {REQUEST_ATTEMPTS} attempts: {last_error}"
    raise TransientRetryExceededError(msg) from last_error
