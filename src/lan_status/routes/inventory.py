"""
Inventory API routes.

Read the raw machine inventory and submit a replacement for it.
"""

import asyncio
import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .._types import MachineRecord

logger = logging.getLogger(__name__)

router = APIRouter()

INVALID_FORMAT = "Invalid data format"


class MachineRecordModel(BaseModel):
    """One submitted machine entry."""
    model_config = ConfigDict(extra="allow")

    name: str
    ip: Optional[str] = None
    gateway: Optional[str] = None
    kiosk_pc: Optional[str] = None
    uplink: Optional[str] = None
    source_switch: Optional[str] = None
    column: Optional[str] = None
    bay: Optional[str] = None
    section: Optional[str] = None

    @field_validator(
        "name", "ip", "gateway", "kiosk_pc", "uplink",
        "source_switch", "column", "bay", "section",
        mode="before",
    )
    @classmethod
    def numbers_as_text(cls, value: Any) -> Any:
        # Editors send bay/column as numbers
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    def to_record(self) -> MachineRecord:
        return MachineRecord.from_dict(self.model_dump(exclude_unset=True))


class InventoryPayload(BaseModel):
    """Body of an inventory write."""
    machines: list[MachineRecordModel]


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
    )


@router.get("/machines")
async def get_machines(request: Request) -> dict:
    """Get the current inventory."""
    store = request.app.state.store

    return {
        "success": True,
        "data": {"machines": [m.to_dict() for m in store.machines]},
    }


@router.api_route("/machines", methods=["PUT", "POST"])
async def replace_machines(request: Request):
    """
    Replace the whole inventory.

    On success the file is rewritten and a broadcast cycle is triggered
    so clients see the edit right away.
    """
    store = request.app.state.store
    broadcaster = request.app.state.broadcaster

    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _error(400, INVALID_FORMAT)

    if not isinstance(body, dict) or not isinstance(body.get("machines"), list):
        return _error(400, INVALID_FORMAT)

    try:
        payload = InventoryPayload.model_validate(body)
    except ValidationError as e:
        logger.warning(f"Rejected inventory write: {e.error_count()} validation errors")
        return _error(400, INVALID_FORMAT)

    machines = [m.to_record() for m in payload.machines]

    saved = await asyncio.to_thread(store.save, machines)
    if not saved:
        return _error(500, "Failed to save inventory")

    broadcaster.trigger("inventory-saved")

    return {
        "success": True,
        "message": "Inventory updated and broadcasted instantly",
    }
