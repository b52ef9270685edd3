"""Tests for the update checker."""

import asyncio
from unittest.mock import AsyncMock, patch

import aiohttp
import pytest

from maintenance.network.update_checker import UpdateChecker, UpdateResult, Version

URL = "https://example.invalid/update"


class FakeResponse:
    def __init__(self, status=200, text=""):
        self.status = status
        self._text = text

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.closed = False

    def get(self, url, timeout=None):
        return self.response


class TestVersion:

    def test_ordering(self):
        assert Version("3.0.7") < Version("3.0.10")
        assert Version("3.1") > Version("3.0.9")
        assert Version("3.0") == Version("3.0.0")

    def test_tag_sorts_before_release(self):
        assert Version("3.0.7-SNAPSHOT") < Version("3.0.7")
        assert Version("3.0.7-SNAPSHOT").is_snapshot

    def test_leading_v_and_whitespace(self):
        assert str(Version(" v2.4 ")) == "2.4"

    def test_invalid(self):
        with pytest.raises(ValueError):
            Version("latest")


class TestUpdateChecker:

    @pytest.mark.asyncio
    async def test_newer_version_available(self):
        checker = UpdateChecker("3.0.7", URL)
        with patch.object(checker, "_get_session", AsyncMock(return_value=FakeSession(FakeResponse(text="3.0.8\n")))):
            result = await checker.check()
        assert result.update_available is True
        assert result.newest == "3.0.8"
        assert result.unavailable is False
        assert checker.last_result is result

    @pytest.mark.asyncio
    async def test_up_to_date(self):
        checker = UpdateChecker("3.0.7", URL)
        with patch.object(checker, "_get_session", AsyncMock(return_value=FakeSession(FakeResponse(text="3.0.7")))):
            result = await checker.check()
        assert result.update_available is False

    @pytest.mark.asyncio
    async def test_snapshot_ahead_of_release(self):
        checker = UpdateChecker("3.1.0-SNAPSHOT", URL)
        with patch.object(checker, "_get_session", AsyncMock(return_value=FakeSession(FakeResponse(text="3.0.7")))):
            result = await checker.check()
        assert result.update_available is False
        assert result.error is None

    @pytest.mark.asyncio
    async def test_http_error_degrades(self):
        checker = UpdateChecker("3.0.7", URL)
        with patch.object(checker, "_get_session", AsyncMock(return_value=FakeSession(FakeResponse(status=500)))):
            result = await checker.check()
        assert result.unavailable is True
        assert "500" in result.error

    @pytest.mark.asyncio
    async def test_garbage_body_degrades(self):
        checker = UpdateChecker("3.0.7", URL)
        with patch.object(checker, "_get_session", AsyncMock(return_value=FakeSession(FakeResponse(text="<html>")))):
            result = await checker.check()
        assert result.unavailable is True

    @pytest.mark.asyncio
    async def test_connection_error_degrades(self):
        checker = UpdateChecker("3.0.7", URL)
        with patch.object(checker, "_get_session", side_effect=aiohttp.ClientError("refused")):
            result = await checker.check()
        assert result.unavailable is True

    @pytest.mark.asyncio
    async def test_start_times_out(self):
        checker = UpdateChecker("3.0.7", URL, timeout_seconds=0.05)
        received = []

        async def slow():
            await asyncio.sleep(5)
            return "9.9.9"

        with patch.object(checker, "_fetch_newest", side_effect=slow):
            result = await checker.start(callback=received.append)

        assert result.error == "timed out"
        assert received == [result]

    @pytest.mark.asyncio
    async def test_start_returns_result(self):
        checker = UpdateChecker("3.0.7", URL)
        with patch.object(checker, "_fetch_newest", AsyncMock(return_value="4.0.0")):
            result = await checker.start()
        assert isinstance(result, UpdateResult)
        assert result.update_available is True
