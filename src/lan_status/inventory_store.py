"""
Inventory Store - owns the machine list and its YAML file.

The persisted file is the single source of truth: every successful save
is followed by a reload, so the in-memory copy is always what a later
load would return. The in-memory inventory is an immutable tuple that is
swapped wholesale, never patched, so a probe cycle reading the previous
tuple is unaffected by a concurrent save.

File format:

    machines:
      - name: Line 1 Press
        ip: 10.0.1.20
        gateway: 10.0.1.1
        kiosk_pc: 10.0.1.21
        uplink: sw-core-01
        source_switch: sw-a3
        column: "4"
        bay: "12"
        section: North
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

import yaml

from ._types import MachineRecord

logger = logging.getLogger(__name__)

Inventory = tuple[MachineRecord, ...]
ChangeListener = Callable[[Inventory], None]

# (mtime_ns, size, inode) of the backing file, None if it does not exist
FileSignature = Optional[tuple[int, int, int]]


class InventoryError(Exception):
    """Raised when an inventory document is structurally invalid."""


def parse_inventory(text: str) -> Inventory:
    """
    Parse a YAML inventory document.

    An empty document is an empty inventory.

    Raises:
        yaml.YAMLError: If the text is not valid YAML
        InventoryError: If the document does not have the expected shape
    """
    data = yaml.safe_load(text)
    if data is None:
        return ()

    if not isinstance(data, dict):
        raise InventoryError("Inventory document must be a mapping")

    machines = data.get("machines")
    if machines is None:
        return ()
    if not isinstance(machines, list):
        raise InventoryError("'machines' must be a list")

    records = []
    for index, entry in enumerate(machines):
        if not isinstance(entry, dict):
            raise InventoryError(f"Machine entry {index} is not a mapping")
        records.append(MachineRecord.from_dict(entry))

    return tuple(records)


def dump_inventory(machines: Sequence[MachineRecord]) -> str:
    """Serialize an inventory to its YAML document."""
    document: dict[str, Any] = {"machines": [m.to_dict() for m in machines]}
    return yaml.safe_dump(
        document,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
    )


def _file_signature(path: Path) -> FileSignature:
    try:
        st = path.stat()
    except FileNotFoundError:
        return None
    return (st.st_mtime_ns, st.st_size, st.st_ino)


class InventoryStore:
    """
    Loads, saves and watches the inventory file.

    Only this class writes the inventory. Readers get the current tuple
    through `machines`.

    load, save and refresh run in worker threads (the watcher and the API
    both call them via asyncio.to_thread). One re-entrant lock makes each
    read-parse-swap and each write-reload a single step, so a watcher
    reload can never land its older tuple after a save's reload.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._machines: Optional[Inventory] = None
        self._signature: FileSignature = None
        self._listeners: list[ChangeListener] = []
        self._lock = threading.RLock()

    @property
    def machines(self) -> Inventory:
        """Current inventory (empty until the first load)."""
        return self._machines if self._machines is not None else ()

    @property
    def loaded(self) -> bool:
        return self._machines is not None

    def add_listener(self, listener: ChangeListener) -> None:
        """Register a callback for externally detected inventory changes."""
        self._listeners.append(listener)

    def load(self) -> Inventory:
        """
        Read the inventory file into memory.

        Any I/O or parse failure is logged and results in an empty
        inventory; it never raises.
        """
        with self._lock:
            signature = _file_signature(self.path)

            try:
                text = self.path.read_text(encoding="utf-8")
                machines = parse_inventory(text)
            except (OSError, yaml.YAMLError, InventoryError) as e:
                logger.error(f"Failed to read inventory {self.path}: {e}")
                machines = ()
            else:
                logger.info(f"Inventory loaded successfully ({len(machines)} machines)")

            self._signature = signature
            self._machines = machines
            return machines

    def save(self, machines: Sequence[MachineRecord]) -> bool:
        """
        Persist a replacement inventory.

        The document is written to a temporary file in the same directory
        and atomically moved over the old one, so a failed save leaves the
        previous file intact.

        Returns:
            True on success, False if the inventory could not be written
        """
        with self._lock:
            tmp_path: Optional[str] = None

            try:
                text = dump_inventory(machines)
                self.path.parent.mkdir(parents=True, exist_ok=True)

                fd, tmp_path = tempfile.mkstemp(
                    dir=self.path.parent,
                    prefix=f".{self.path.name}.",
                    suffix=".tmp",
                )
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(text)
                    f.flush()
                    os.fsync(f.fileno())

                os.replace(tmp_path, self.path)
                tmp_path = None

            except (OSError, yaml.YAMLError) as e:
                logger.error(f"Failed to save inventory {self.path}: {e}")
                return False

            finally:
                if tmp_path is not None:
                    Path(tmp_path).unlink(missing_ok=True)

            logger.info(f"Inventory saved successfully ({len(machines)} machines)")

            # Reload so memory matches exactly what is on disk
            self.load()
            return True

    def refresh_if_changed(self) -> bool:
        """
        Reload the inventory if the backing file changed since the last
        load or save.

        Returns:
            True if a reload happened
        """
        with self._lock:
            signature = _file_signature(self.path)
            if self.loaded and signature == self._signature:
                return False

            if self.loaded:
                logger.info(f"Detected external inventory modification: {self.path}")
            self.load()
            return True

    def check_for_changes(self) -> bool:
        """Reload on change and notify listeners."""
        changed = self.refresh_if_changed()
        if changed:
            self._notify()
        return changed

    def _notify(self) -> None:
        machines = self.machines
        for listener in list(self._listeners):
            try:
                listener(machines)
            except Exception:
                logger.exception("Inventory change listener failed")

    async def watch(
        self,
        interval: float,
        stop_event: Optional[asyncio.Event] = None,
    ) -> None:
        """
        Poll the backing file until `stop_event` is set.

        Duplicate or missed notifications are harmless: a reload only
        replaces the in-memory tuple with the file's current content.
        """
        stop_event = stop_event or asyncio.Event()
        logger.info(f"Watching {self.path} every {interval}s")

        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
                break
            except asyncio.TimeoutError:
                pass

            try:
                changed = await asyncio.to_thread(self.refresh_if_changed)
            except Exception as e:
                logger.error(f"Inventory watch error: {e}")
                continue

            if changed:
                self._notify()

        logger.info("Inventory watcher stopped")
