"""
Probe Engine - reachability and latency of every configured address.

Machines are probed in fixed-size batches. Batches run one after another;
inside a batch every address of every machine is pinged concurrently and
the batch is fully settled before the next one starts. Worst-case cycle
time is therefore about ceil(machines / batch_size) * timeout.
"""

from __future__ import annotations

import asyncio
import logging
import platform
import re
from typing import Awaitable, Callable, Optional, Sequence

from ._types import MachineRecord, MachineStatus, ProbeResult
from .utils import run_command

logger = logging.getLogger(__name__)

# Latency in ms, or None when the address did not answer
Pinger = Callable[[str, float], Awaitable[Optional[float]]]

# "64 bytes from 10.0.0.1: icmp_seq=1 ttl=64 time=0.43 ms", "time<1ms"
_TIME_PATTERN = re.compile(r"time\s*[=<]\s*(\d+(?:[.,]\d+)?)\s*ms", re.IGNORECASE)


def ping_command(address: str, timeout: float) -> list[str]:
    """Build a single-echo ping command for the current platform."""
    system = platform.system().lower()
    if system == "windows":
        return ["ping", "-n", "1", "-w", str(max(1, int(timeout * 1000))), address]
    if system == "darwin":
        return ["ping", "-c", "1", "-W", str(max(1, int(timeout * 1000))), address]
    return ["ping", "-c", "1", "-W", str(max(1, int(round(timeout)))), address]


def parse_latency(output: str) -> Optional[float]:
    """Extract the round-trip time from ping output."""
    match = _TIME_PATTERN.search(output)
    if not match:
        return None
    return float(match.group(1).replace(",", "."))


async def icmp_ping(address: str, timeout: float) -> Optional[float]:
    """
    Ping an address once with the system ping binary.

    Returns:
        Round-trip time in milliseconds, or None if unreachable
    """
    result = await run_command(ping_command(address, timeout), timeout=timeout + 1)
    if not result.success:
        logger.debug(
            f"ping {address} exited {result.exit_code} after {result.duration_sec:.2f}s: "
            f"{result.stderr.strip() or 'no reply'}"
        )
        return None
    return parse_latency(result.stdout)


class ProbeEngine:
    """
    Batched concurrent prober.

    The engine never mutates the records it is given; it returns new
    MachineStatus objects in input order.
    """

    def __init__(
        self,
        batch_size: int = 20,
        timeout_seconds: float = 2.0,
        pinger: Optional[Pinger] = None,
    ):
        """
        Initialize probe engine.

        Args:
            batch_size: Machines probed concurrently per batch
            timeout_seconds: Per-probe timeout
            pinger: Async callable (address, timeout) -> latency ms or None
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.batch_size = batch_size
        self.timeout_seconds = timeout_seconds
        self.pinger: Pinger = pinger or icmp_ping

    async def probe_address(self, address: str) -> ProbeResult:
        """
        Probe one address.

        Timeouts and probe errors resolve to an unreachable result.
        """
        try:
            latency = await asyncio.wait_for(
                self.pinger(address, self.timeout_seconds),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.debug(f"Probe of {address} timed out after {self.timeout_seconds}s")
            return ProbeResult.unreachable(address)
        except Exception as e:
            logger.debug(f"Probe of {address} failed: {e}")
            return ProbeResult.unreachable(address)

        if latency is None:
            return ProbeResult.unreachable(address)

        return ProbeResult(address=address, reachable=True, latency_ms=max(0.0, float(latency)))

    async def probe_machine(self, machine: MachineRecord) -> MachineStatus:
        """Probe every configured address role of one machine concurrently."""
        roles = machine.configured_roles
        results = await asyncio.gather(
            *(self.probe_address(machine.address_for(role)) for role in roles)
        )
        return MachineStatus(record=machine, results=dict(zip(roles, results)))

    def batches(self, machines: Sequence[MachineRecord]) -> list[Sequence[MachineRecord]]:
        """Partition machines into consecutive batches."""
        return [
            machines[i:i + self.batch_size]
            for i in range(0, len(machines), self.batch_size)
        ]

    async def probe_all(self, machines: Sequence[MachineRecord]) -> list[MachineStatus]:
        """
        Probe every machine, batch by batch.

        Returns:
            One MachineStatus per input record, in input order
        """
        statuses: list[MachineStatus] = []

        for batch in self.batches(machines):
            settled = await asyncio.gather(
                *(self.probe_machine(machine) for machine in batch),
                return_exceptions=True,
            )
            for machine, status in zip(batch, settled):
                if isinstance(status, asyncio.CancelledError):
                    raise status
                if isinstance(status, BaseException):
                    logger.error(f"Probing {machine.name!r} failed: {status}")
                    status = MachineStatus(
                        record=machine,
                        results={
                            role: ProbeResult.unreachable(machine.address_for(role))
                            for role in machine.configured_roles
                        },
                    )
                statuses.append(status)

        return statuses
