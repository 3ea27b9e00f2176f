"""
LAN Status - live reachability dashboard backend.

Pings every machine in a YAML inventory (main IP, gateway and kiosk PC)
in bounded batches and pushes complete status snapshots to connected
dashboards over a websocket. The inventory is editable over a small
REST API and is also reloaded when the file is changed on disk.

Components:
    InventoryStore    - owns the machine list and its YAML file
    ProbeEngine       - batched concurrent pinging
    StatusBroadcaster - one cycle at a time, latest snapshot cache
    StatusChannel     - fan-out to live subscribers
"""

__version__ = "1.0.0"

from ._types import (
    AddressRole,
    StatusColor,
    MachineRecord,
    ProbeResult,
    MachineStatus,
    StatusSnapshot,
    status_color,
)

__all__ = [
    "__version__",
    "AddressRole",
    "StatusColor",
    "MachineRecord",
    "ProbeResult",
    "MachineStatus",
    "StatusSnapshot",
    "status_color",
]
