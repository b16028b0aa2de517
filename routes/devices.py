# ─────────────────────────────────────────────────────────────────
# routes/devices.py - Device Endpoints
#
# Firmware writes land here (PUT/PATCH) and the dashboard reads the
# normalized views back (GET). Writing to the store is all a route
# does: the store publishes the change and the handlers react to it.
# ─────────────────────────────────────────────────────────────────

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException

from alerts import history_path
from dashboard import build_history, build_status_cards, device_view
from database import join_path
from handlers import Dispatcher, get_dispatcher
from models import DeviceList, DeviceView, StatusCard

logger = logging.getLogger("routes")

router = APIRouter(
    prefix="/devices",
    tags=["Devices"]
)


def _load_device(dispatcher: Dispatcher, device_id: str) -> Dict[str, Any]:
    document = dispatcher.store.get(join_path("devices", device_id))
    if not isinstance(document, dict):
        raise HTTPException(
            status_code=404,
            detail=f"Device '{device_id}' not found."
        )
    return document


# ─────────────────────────────────────────────────────────────────
# PUT /devices/{device_id} - Firmware replaces its document
# ─────────────────────────────────────────────────────────────────

@router.put("/{device_id}", response_model=DeviceView, response_model_by_alias=True)
def write_device(device_id: str,
                 payload: Dict[str, Any] = Body(...),
                 dispatcher: Dispatcher = Depends(get_dispatcher)):
    """
    Replaces the raw device document with the payload as sent.

    Any field name the firmware uses is accepted; the normalizer
    sorts them out on the way back.
    """

    dispatcher.store.set(join_path("devices", device_id), payload)
    logger.info(f"📥 Device '{device_id}' wrote {len(payload)} field(s)")
    return device_view(device_id, _load_device(dispatcher, device_id))


# ─────────────────────────────────────────────────────────────────
# PATCH /devices/{device_id} - Firmware updates some fields
# ─────────────────────────────────────────────────────────────────

@router.patch("/{device_id}", response_model=DeviceView, response_model_by_alias=True)
def update_device(device_id: str,
                  payload: Dict[str, Any] = Body(...),
                  dispatcher: Dispatcher = Depends(get_dispatcher)):
    """Merges the payload's top-level fields into the device document."""

    if not payload:
        raise HTTPException(status_code=400, detail="Nothing to update.")

    fields = {key: value for key, value in payload.items() if "/" not in key}
    if len(fields) != len(payload):
        raise HTTPException(status_code=400, detail="Field names may not contain '/'.")

    dispatcher.store.update(join_path("devices", device_id), fields)
    logger.info(f"📥 Device '{device_id}' updated {sorted(fields)}")
    return device_view(device_id, _load_device(dispatcher, device_id))


# ─────────────────────────────────────────────────────────────────
# GET /devices - Every device at a glance
# ─────────────────────────────────────────────────────────────────

@router.get("", response_model=DeviceList, response_model_by_alias=True)
def list_devices(dispatcher: Dispatcher = Depends(get_dispatcher)):
    devices = [
        device_view(device_id, document)
        for device_id, document in dispatcher.store.children("devices").items()
        if isinstance(document, dict)
    ]
    return DeviceList(devices=devices, total=len(devices))


# ─────────────────────────────────────────────────────────────────
# GET /devices/{device_id} - Live status of one device
# ─────────────────────────────────────────────────────────────────

@router.get("/{device_id}", response_model=DeviceView, response_model_by_alias=True)
def get_device(device_id: str, dispatcher: Dispatcher = Depends(get_dispatcher)):
    return device_view(device_id, _load_device(dispatcher, device_id))


# ─────────────────────────────────────────────────────────────────
# GET /devices/{device_id}/readings - Chart history
# ─────────────────────────────────────────────────────────────────

@router.get("/{device_id}/readings", response_model=List[DeviceView],
            response_model_by_alias=True)
def get_readings(device_id: str, dispatcher: Dispatcher = Depends(get_dispatcher)):
    return build_history(device_id, _load_device(dispatcher, device_id))


# ─────────────────────────────────────────────────────────────────
# GET /devices/{device_id}/status-history - Alert cards
# ─────────────────────────────────────────────────────────────────

@router.get("/{device_id}/status-history", response_model=List[StatusCard],
            response_model_by_alias=True)
def get_status_history(device_id: str, dispatcher: Dispatcher = Depends(get_dispatcher)):
    """The newest alert history entries, one card each. Empty if none."""
    return build_status_cards(dispatcher.store.get(history_path(device_id)))
