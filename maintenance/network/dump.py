"""Diagnostic dump -- snapshot of the running service uploaded to a paste site.

The paste service (hastebin-compatible) takes the raw document via POST and
answers ``{"key": "..."}``.  A 503, a missing key or any transport error
yields ``None``; the failure is logged and never raised.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Callable, Optional

import aiohttp
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class DiagnosticDump(BaseModel):
    """What gets uploaded. Built by ``MaintenanceService.build_dump``."""
    version: str
    platform: str
    instance_id: str = Field(default="")
    created_at: float = Field(default_factory=time.time)
    maintenance_enabled: bool = Field(default=False)
    countdown_running: bool = Field(default=False)
    countdown_seconds_remaining: int = Field(default=0)
    saved_end_timer: int = Field(default=0)
    whitelist_size: int = Field(default=0)
    storage: dict[str, str] = Field(default_factory=dict)
    config: dict[str, Any] = Field(default_factory=dict)


class DumpUploader:
    """Uploads ``DiagnosticDump`` documents."""

    def __init__(self, url: str, user_agent: str = "Maintenance", timeout_seconds: float = 10.0):
        self._url = url
        self._user_agent = user_agent
        self._timeout = timeout_seconds
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": self._user_agent, "Content-Type": "text/plain"}
            )
        return self._session

    async def upload(self, dump: DiagnosticDump) -> Optional[str]:
        """Upload ``dump`` and return the paste key, or None on failure."""
        body = json.dumps(dump.model_dump(), indent=2, ensure_ascii=False, default=str)
        try:
            session = await self._get_session()
            async with session.post(
                self._url,
                data=body.encode("utf-8"),
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as resp:
                if resp.status == 503:
                    logger.warning("Could not paste dump, paste service down?")
                    return None
                if resp.status >= 400:
                    logger.warning(f"Could not paste dump, paste service returned {resp.status}")
                    return None
                payload = await resp.json(content_type=None)
        except Exception as e:
            logger.warning(f"Could not paste dump: {e}")
            return None

        if not isinstance(payload, dict) or "key" not in payload:
            logger.warning("Could not paste dump, there was no key returned")
            return None
        return str(payload["key"])

    def start(
        self,
        dump: DiagnosticDump,
        callback: Optional[Callable[[Optional[str]], None]] = None,
    ) -> asyncio.Task:
        """Upload in a background task bounded by the timeout."""
        async def _run() -> Optional[str]:
            try:
                key = await asyncio.wait_for(self.upload(dump), timeout=self._timeout)
            except asyncio.TimeoutError:
                logger.warning("Dump upload timed out after %.1fs", self._timeout)
                key = None
            if callback is not None:
                callback(key)
            return key

        return asyncio.create_task(_run(), name="dump-upload")

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()
