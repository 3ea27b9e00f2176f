"""Tests for the probe engine."""

import asyncio
import logging
from unittest.mock import AsyncMock, patch

import pytest

from lan_status._types import AddressRole, MachineRecord, StatusColor
from lan_status.probe import ProbeEngine, icmp_ping, parse_latency, ping_command
from lan_status.utils import CommandResult


def make_machines(count, **addresses):
    addresses = addresses or {"ip": "10.0.0.{i}"}
    return [
        MachineRecord(
            name=f"m{i}",
            **{role: value.format(i=i) for role, value in addresses.items()},
        )
        for i in range(count)
    ]


async def fast_pinger(address, timeout):
    return 1.5


class ConcurrencyTracker:
    """Pinger that records how many probes run at once."""

    def __init__(self, delay=0.01, latency=5.0):
        self.delay = delay
        self.latency = latency
        self.active = 0
        self.peak = 0
        self.addresses = []

    async def __call__(self, address, timeout):
        self.active += 1
        self.peak = max(self.peak, self.active)
        self.addresses.append(address)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.active -= 1
        return self.latency


class TestParseLatency:
    """Tests for ping output parsing."""

    def test_linux_output(self):
        output = "64 bytes from 10.0.0.1: icmp_seq=1 ttl=64 time=0.431 ms"
        assert parse_latency(output) == pytest.approx(0.431)

    def test_windows_output(self):
        output = "Reply from 10.0.0.1: bytes=32 time=14ms TTL=128"
        assert parse_latency(output) == 14.0

    def test_windows_sub_millisecond(self):
        output = "Reply from 10.0.0.1: bytes=32 time<1ms TTL=128"
        assert parse_latency(output) == 1.0

    def test_no_reply(self):
        assert parse_latency("Request timed out.") is None


class TestPingCommand:
    """Tests for platform ping commands."""

    def test_linux_command(self):
        with patch("lan_status.probe.platform.system", return_value="Linux"):
            assert ping_command("10.0.0.1", 2) == ["ping", "-c", "1", "-W", "2", "10.0.0.1"]

    def test_windows_command(self):
        with patch("lan_status.probe.platform.system", return_value="Windows"):
            assert ping_command("10.0.0.1", 2) == ["ping", "-n", "1", "-w", "2000", "10.0.0.1"]

    def test_macos_command(self):
        with patch("lan_status.probe.platform.system", return_value="Darwin"):
            assert ping_command("10.0.0.1", 2) == ["ping", "-c", "1", "-W", "2000", "10.0.0.1"]


class TestIcmpPing:
    """Tests for the system ping wrapper."""

    @pytest.mark.asyncio
    async def test_successful_ping(self):
        result = CommandResult(0, "64 bytes from 10.0.0.1: time=3.2 ms", "", 0.01)
        with patch("lan_status.probe.run_command", AsyncMock(return_value=result)):
            assert await icmp_ping("10.0.0.1", 2) == pytest.approx(3.2)

    @pytest.mark.asyncio
    async def test_failed_ping(self):
        result = CommandResult(1, "100% packet loss", "", 2.0)
        with patch("lan_status.probe.run_command", AsyncMock(return_value=result)):
            assert await icmp_ping("10.0.0.1", 2) is None

    @pytest.mark.asyncio
    async def test_failed_ping_logs_exit_details(self, caplog):
        result = CommandResult(2, "", "ping: unknown host", 0.25)
        with patch("lan_status.probe.run_command", AsyncMock(return_value=result)):
            with caplog.at_level(logging.DEBUG, logger="lan_status.probe"):
                assert await icmp_ping("nowhere", 2) is None

        assert "exited 2 after 0.25s: ping: unknown host" in caplog.text


class TestProbeAddress:
    """Tests for single-address probing."""

    @pytest.mark.asyncio
    async def test_reachable(self):
        engine = ProbeEngine(pinger=AsyncMock(return_value=42.0))

        result = await engine.probe_address("10.0.0.1")

        assert result.reachable is True
        assert result.latency_ms == 42.0
        assert result.status_color == StatusColor.ORANGE

    @pytest.mark.asyncio
    async def test_no_answer_is_unreachable(self):
        engine = ProbeEngine(pinger=AsyncMock(return_value=None))

        result = await engine.probe_address("10.0.0.1")

        assert result.reachable is False
        assert result.latency_ms == 0

    @pytest.mark.asyncio
    async def test_probe_error_is_unreachable(self):
        """Resolution failures and the like never escape the probe."""
        engine = ProbeEngine(pinger=AsyncMock(side_effect=OSError("Name or service not known")))

        result = await engine.probe_address("no-such-host.invalid")

        assert result.reachable is False
        assert result.latency_ms == 0
        assert result.status_color == StatusColor.RED

    @pytest.mark.asyncio
    async def test_timeout_is_unreachable(self):
        async def hang(address, timeout):
            await asyncio.sleep(10)

        engine = ProbeEngine(timeout_seconds=0.05, pinger=hang)

        result = await engine.probe_address("10.0.0.1")

        assert result.reachable is False


class TestProbeMachine:
    """Tests for per-machine probing."""

    @pytest.mark.asyncio
    async def test_only_configured_roles_probed(self):
        pinger = AsyncMock(return_value=2.0)
        engine = ProbeEngine(pinger=pinger)
        machine = MachineRecord(name="A", ip="10.0.0.1", kiosk_pc="10.0.0.3", gateway="")

        status = await engine.probe_machine(machine)

        assert set(status.results) == {AddressRole.IP, AddressRole.KIOSK_PC}
        assert pinger.await_count == 2
        assert status.record is machine

    @pytest.mark.asyncio
    async def test_roles_probed_concurrently(self):
        tracker = ConcurrencyTracker()
        engine = ProbeEngine(pinger=tracker)
        machine = MachineRecord(name="A", ip="10.0.0.1", gateway="10.0.0.2", kiosk_pc="10.0.0.3")

        await engine.probe_machine(machine)

        assert tracker.peak == 3

    @pytest.mark.asyncio
    async def test_one_failing_role_does_not_affect_others(self):
        async def pinger(address, timeout):
            if address == "bad":
                raise RuntimeError("boom")
            return 4.0

        engine = ProbeEngine(pinger=pinger)
        machine = MachineRecord(name="A", ip="10.0.0.1", gateway="bad")

        status = await engine.probe_machine(machine)

        assert status.results[AddressRole.IP].reachable is True
        assert status.results[AddressRole.GATEWAY].reachable is False


class TestProbeAll:
    """Tests for batched probing."""

    @pytest.mark.asyncio
    async def test_empty_inventory(self):
        engine = ProbeEngine(pinger=fast_pinger)

        assert await engine.probe_all([]) == []

    @pytest.mark.asyncio
    async def test_order_and_length_preserved(self):
        """Output matches input order even when probes finish out of order."""
        async def pinger(address, timeout):
            # Later machines answer first
            await asyncio.sleep(0.001 * (50 - int(address.rsplit(".", 1)[1])))
            return 1.0

        machines = make_machines(45)
        engine = ProbeEngine(batch_size=20, pinger=pinger)

        statuses = await engine.probe_all(machines)

        assert len(statuses) == 45
        assert [s.record for s in statuses] == machines

    @pytest.mark.asyncio
    async def test_does_not_mutate_input(self):
        machines = make_machines(3)
        before = list(machines)
        engine = ProbeEngine(pinger=fast_pinger)

        await engine.probe_all(machines)

        assert machines == before

    def test_batch_partition(self):
        """45 machines with batch size 20 make batches of 20, 20, 5."""
        engine = ProbeEngine(batch_size=20)

        batches = engine.batches(make_machines(45))

        assert [len(b) for b in batches] == [20, 20, 5]

    @pytest.mark.asyncio
    async def test_concurrency_bounded_by_batch(self):
        tracker = ConcurrencyTracker()
        engine = ProbeEngine(batch_size=20, pinger=tracker)

        await engine.probe_all(make_machines(45))

        assert tracker.peak == 20
        assert len(tracker.addresses) == 45

    @pytest.mark.asyncio
    async def test_batches_run_sequentially(self):
        """No probe of batch N+1 starts before batch N has settled."""
        starts = []
        finished = []

        async def pinger(address, timeout):
            index = int(address.rsplit(".", 1)[1])
            starts.append((index, len(finished)))
            await asyncio.sleep(0.005)
            finished.append(index)
            return 1.0

        engine = ProbeEngine(batch_size=20, pinger=pinger)
        await engine.probe_all(make_machines(45))

        for index, finished_before_start in starts:
            assert finished_before_start == (index // 20) * 20

    @pytest.mark.asyncio
    async def test_wall_time_bounded_by_batches(self):
        """All-timeout inventory takes about batches x timeout, not machines x timeout."""
        async def hang(address, timeout):
            await asyncio.sleep(10)

        timeout = 0.1
        engine = ProbeEngine(batch_size=20, timeout_seconds=timeout, pinger=hang)
        loop = asyncio.get_running_loop()

        started = loop.time()
        statuses = await engine.probe_all(make_machines(45))
        elapsed = loop.time() - started

        assert all(not s.results[AddressRole.IP].reachable for s in statuses)
        assert elapsed >= 3 * timeout * 0.9
        assert elapsed < 3 * timeout + 1.0

    def test_invalid_batch_size(self):
        with pytest.raises(ValueError):
            ProbeEngine(batch_size=0)
