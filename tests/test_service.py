"""Tests for the maintenance service facade."""

import asyncio
import uuid
from unittest.mock import patch

import pytest
import pytest_asyncio
from prometheus_client import CollectorRegistry

from maintenance.core.whitelist import AccessControlList, InvalidIdentifierError
from maintenance.observability.metrics import MetricsCollector
from maintenance.platform.base import ConnectionGate, StatusQuery
from maintenance.service import MaintenanceService, broadcast_thresholds_from, describe

KENNY = uuid.UUID("a8179ff3-c201-4a75-bdaa-9d14aca6f83f")
STRANGER = uuid.UUID("853c80ef-3c37-49fd-aa49-938b674adae6")


@pytest_asyncio.fixture
async def acl(whitelist_store):
    acl = AccessControlList(whitelist_store)
    await acl.add(KENNY, "KennyTV")
    return acl


@pytest.fixture
def metrics():
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def service(config_store, acl, platform, metrics):
    return MaintenanceService.create(config_store, acl, platform, metrics=metrics)


class TestModeChanges:
    """Side effects of enabling and disabling."""

    @pytest.mark.asyncio
    async def test_enable_broadcasts_and_runs_commands(self, service, config_store, platform):
        config_store.set("commands-on-enable", ["whitelist on", "say bye"])
        await service.set_maintenance(True)
        assert service.is_maintenance() is True
        assert platform.broadcasts == ["§cMaintenance mode has been enabled!"]
        assert platform.commands == ["whitelist on", "say bye"]

    @pytest.mark.asyncio
    async def test_disable_runs_disable_commands(self, service, config_store, platform):
        config_store.set("commands-on-disable", ["say back"])
        await service.set_maintenance(True)
        await service.set_maintenance(False)
        assert platform.broadcasts[-1] == "§aMaintenance mode has been disabled!"
        assert platform.commands == ["say back"]

    @pytest.mark.asyncio
    async def test_failing_command_does_not_stop_the_rest(self, service, config_store, platform, metrics):
        platform.failing_commands = {"broken"}
        config_store.set("commands-on-enable", ["first", "broken", "last"])
        await service.set_maintenance(True)
        assert platform.commands == ["first", "last"]
        assert metrics.command_failures.labels(phase="enable")._value.get() == 1

    @pytest.mark.asyncio
    async def test_kick_spares_whitelisted(self, service, config_store, platform, metrics):
        config_store.set("kick-on-maintenance", True)
        platform.online = {KENNY: "KennyTV", STRANGER: "Stranger"}
        await service.set_maintenance(True)
        assert list(platform.online) == [KENNY]
        assert [pid for pid, _ in platform.kicked] == [STRANGER]
        assert "\n" in platform.kicked[0][1]
        assert metrics.players_kicked._value.get() == 1

    @pytest.mark.asyncio
    async def test_no_kick_by_default(self, service, platform):
        platform.online = {STRANGER: "Stranger"}
        await service.set_maintenance(True)
        assert platform.kicked == []

    @pytest.mark.asyncio
    async def test_metrics_follow_mode(self, service, metrics):
        await service.set_maintenance(True)
        assert metrics.maintenance_enabled._value.get() == 1
        assert metrics.mode_changes.labels(to_state="on")._value.get() == 1

    @pytest.mark.asyncio
    async def test_manual_set_cancels_countdown(self, service):
        await service.start_countdown(60, enable=True)
        await service.set_maintenance(True)
        assert service.engine.is_idle
        assert service.get_timer_message() == "-"

    @pytest.mark.asyncio
    async def test_countdown_completion_fires_side_effects(self, service, platform):
        await service.start_countdown(2, enable=True)
        await service.engine.tick()
        await service.engine.tick()
        assert service.is_maintenance() is True
        assert platform.broadcasts[-1] == "§cMaintenance mode has been enabled!"
        # countdown announcements use the configured message
        assert "§eMaintenance will be enabled in §600:00:02" in platform.broadcasts


class TestStatus:
    """Timer and ping texts for the status display."""

    @pytest.mark.asyncio
    async def test_timer_message(self, service):
        assert service.get_timer_message() == "-"
        await service.start_countdown(3725, enable=True)
        assert service.get_timer_message() == "01:02:05"

    def test_format_duration(self, service):
        assert service.format_duration(3720) == "1 hour 2 minutes"
        assert service.format_duration(1) == "1 second"

    @pytest.mark.asyncio
    async def test_ping_message_requires_maintenance_and_flag(self, service, config_store):
        assert service.get_ping_message() is None
        await service.set_maintenance(True)
        assert service.get_ping_message() is None
        config_store.set("enable-ping-messages", True)
        config_store.set("pingmessages", ["&cDown%NEWLINE%%ONLINE%/%MAX% %TIMER%"])
        assert service.get_ping_message() == "§cDown\n0/20 -"

    @pytest.mark.asyncio
    async def test_ping_message_picks_from_list(self, service, config_store):
        await service.set_maintenance(True)
        config_store.set("enable-ping-messages", True)
        config_store.set("pingmessages", ["one", "two"])
        with patch("maintenance.service.random.choice", side_effect=lambda seq: seq[-1]):
            assert service.get_ping_message() == "two"

    def test_message_falls_back_to_default(self, service, config_store):
        config_store.set("messages", None)
        assert service.get_message("motd-timer-not-running") == "-"

    def test_protocols(self, service):
        assert isinstance(service, StatusQuery)
        assert isinstance(service, ConnectionGate)


class TestGate:
    """Connection gate decisions."""

    def test_everyone_allowed_without_maintenance(self, service):
        assert service.is_allowed(STRANGER) is True

    @pytest.mark.asyncio
    async def test_whitelist_and_bypass(self, service):
        await service.set_maintenance(True)
        assert service.is_allowed(KENNY) is True
        assert service.is_allowed(str(KENNY)) is True
        assert service.is_allowed(STRANGER) is False
        assert service.is_allowed(STRANGER, has_bypass=True) is True

    @pytest.mark.asyncio
    async def test_invalid_identifier(self, service):
        await service.set_maintenance(True)
        with pytest.raises(InvalidIdentifierError):
            service.is_allowed("nope")

    @pytest.mark.asyncio
    async def test_whitelist_helpers_update_metrics(self, service, metrics):
        assert await service.add_to_whitelist(str(STRANGER), "Stranger") is True
        assert metrics.whitelist_size._value.get() == 2
        assert await service.remove_from_whitelist(STRANGER) is True
        assert metrics.whitelist_size._value.get() == 1


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_continue_last_end_timer(self, service):
        await service.set_maintenance(True)
        await service.state.set_saved_end_timer(service.engine._now_ms() + 60_000)
        assert await service.continue_last_end_timer() is True
        assert service.engine.is_running

    @pytest.mark.asyncio
    async def test_continue_disabled_by_config(self, service, config_store):
        config_store.set("save-endtimer-on-stop", False)
        await service.set_maintenance(True)
        await service.state.set_saved_end_timer(service.engine._now_ms() + 60_000)
        assert await service.continue_last_end_timer() is False
        assert service.engine.is_idle

    @pytest.mark.asyncio
    async def test_start_ticking_drives_engine(self, config_store, acl, platform):
        service = MaintenanceService.create(config_store, acl, platform, tick_interval_seconds=0.01)
        await service.start_countdown(2, enable=True)
        task = service.start_ticking()
        try:
            for _ in range(200):
                if service.is_maintenance():
                    break
                await asyncio.sleep(0.01)
        finally:
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
        assert service.is_maintenance() is True

    @pytest.mark.asyncio
    async def test_reload_picks_up_external_edit(self, service, config_store):
        config_store.set("maintenance-enabled", True)
        config_store.set("timer-broadcast-for-seconds", [7])
        await config_store.save()
        await service.reload()
        assert service.is_maintenance() is True
        assert service.engine.broadcast_thresholds == (7,)

    def test_thresholds_default_when_absent(self, config_store):
        config_store.set("timer-broadcast-for-seconds", None)
        assert broadcast_thresholds_from(config_store)[0] == 1200

    @pytest.mark.asyncio
    async def test_build_dump(self, service):
        dump = service.build_dump("3.0.7", "node-1")
        assert dump.platform == "recording"
        assert dump.whitelist_size == 1
        assert dump.config["maintenance-enabled"] is False
        assert dump.storage["config"].endswith("config.yml")

    def test_describe(self, service):
        assert describe(service) == {
            "maintenance": False,
            "countdown": "IDLE",
            "seconds_remaining": 0,
            "whitelisted": 1,
        }


class TestReloadConcurrency:

    @pytest.mark.asyncio
    async def test_reload_and_toggle_stay_consistent(self, service, config_store):
        await asyncio.gather(service.reload(), service.set_maintenance(True))
        assert service.is_maintenance() is True
        await config_store.reload()
        assert config_store.get_bool("maintenance-enabled") is True

    @pytest.mark.asyncio
    async def test_reload_waits_for_running_tick(self, service, config_store):
        await service.start_countdown(1, enable=True)
        tick_task = asyncio.create_task(service.engine.tick())
        await asyncio.sleep(0)
        await asyncio.gather(tick_task, service.reload())
        # reload ran after the tick and read the saved mode back
        assert service.is_maintenance() is True
        assert config_store.get_bool("maintenance-enabled") is True
