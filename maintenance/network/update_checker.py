"""Update checker -- asks the release endpoint for the newest version.

The endpoint answers with a plain-text version string (first line).  Every
transport or parse failure degrades to an ``UpdateResult`` carrying an
``error``; nothing is raised into the caller, and the check runs as its own
task with a bounded timeout (see ``UpdateChecker.start``).
"""

from __future__ import annotations

import asyncio
import functools
import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional

import aiohttp

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"^\s*v?(\d+(?:\.\d+)*)(?:-([0-9A-Za-z.]+))?\s*$")


@functools.total_ordering
class Version:
    """Dotted numeric version with an optional tag (``3.0.7-SNAPSHOT``).

    A tagged version sorts before the same untagged version.
    """

    def __init__(self, raw: str):
        match = _VERSION_RE.match(raw or "")
        if not match:
            raise ValueError(f"Invalid version string: {raw!r}")
        self.parts = tuple(int(p) for p in match.group(1).split("."))
        self.tag = match.group(2) or ""

    def _key(self, width: int) -> tuple:
        padded = self.parts + (0,) * (width - len(self.parts))
        return padded + (0 if self.tag else 1,)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        width = max(len(self.parts), len(other.parts))
        return self._key(width) == other._key(width) and self.tag.lower() == other.tag.lower()

    def __lt__(self, other: "Version") -> bool:
        width = max(len(self.parts), len(other.parts))
        return self._key(width) < other._key(width)

    def __hash__(self) -> int:
        parts = list(self.parts)
        while parts and parts[-1] == 0:
            parts.pop()
        return hash((tuple(parts), self.tag.lower()))

    @property
    def is_snapshot(self) -> bool:
        return self.tag.lower() == "snapshot"

    def __str__(self) -> str:
        base = ".".join(str(p) for p in self.parts)
        return f"{base}-{self.tag}" if self.tag else base

    def __repr__(self) -> str:
        return f"Version({str(self)!r})"


@dataclass
class UpdateResult:
    current: str
    newest: Optional[str] = None
    update_available: bool = False
    error: Optional[str] = None

    @property
    def unavailable(self) -> bool:
        return self.error is not None


class UpdateChecker:
    """Checks the release endpoint for a newer version."""

    def __init__(self, current_version: str, url: str, timeout_seconds: float = 10.0):
        self._current = Version(current_version)
        self._url = url
        self._timeout = timeout_seconds
        self._session: Optional[aiohttp.ClientSession] = None
        self.last_result: Optional[UpdateResult] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": f"Maintenance/{self._current}"}
            )
        return self._session

    async def check(self) -> UpdateResult:
        """Fetch the newest version and compare it with the running one."""
        try:
            newest = Version(await self._fetch_newest())
        except Exception as e:
            logger.warning(f"An error occurred during update checking: {e}")
            result = UpdateResult(current=str(self._current), error=str(e) or type(e).__name__)
            self.last_result = result
            return result

        result = UpdateResult(
            current=str(self._current),
            newest=str(newest),
            update_available=self._current < newest,
        )
        if result.update_available:
            logger.info(f"Newest version available: {newest}, you're on {self._current}")
        elif newest < self._current:
            if self._current.is_snapshot:
                logger.info("You're running a development version, please report bugs on the issue tracker")
            else:
                logger.info(f"You're running a version that doesn't exist upstream ({self._current})")
        self.last_result = result
        return result

    async def _fetch_newest(self) -> str:
        session = await self._get_session()
        async with session.get(self._url, timeout=aiohttp.ClientTimeout(total=self._timeout)) as resp:
            if resp.status != 200:
                raise ValueError(f"update endpoint returned {resp.status}")
            body = (await resp.text()).strip()
        if not body:
            raise ValueError("update endpoint returned an empty body")
        return body.splitlines()[0]

    def start(self, callback: Optional[Callable[[UpdateResult], None]] = None) -> asyncio.Task:
        """Run ``check`` as a background task bounded by the timeout.

        The returned task resolves to an ``UpdateResult``; ``callback`` (if
        any) receives the same result.
        """
        async def _run() -> UpdateResult:
            try:
                result = await asyncio.wait_for(self.check(), timeout=self._timeout)
            except asyncio.TimeoutError:
                logger.warning("Update check timed out after %.1fs", self._timeout)
                result = UpdateResult(current=str(self._current), error="timed out")
                self.last_result = result
            if callback is not None:
                callback(result)
            return result

        return asyncio.create_task(_run(), name="update-check")

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()
