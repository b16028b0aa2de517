# ─────────────────────────────────────────────────────────────────
# routes/registrations.py - Device Registrations
#
# A registration links a user to a device. Alert notifications go
# to every user with a registration for the device.
# ─────────────────────────────────────────────────────────────────

import logging

from fastapi import APIRouter, Depends

from database import join_path
from handlers import Dispatcher, get_dispatcher
from models import RegistrationCreate

logger = logging.getLogger("routes")

router = APIRouter(
    prefix="/registrations",
    tags=["Registrations"]
)


@router.post("", status_code=201)
def create_registration(registration: RegistrationCreate,
                        dispatcher: Dispatcher = Depends(get_dispatcher)):
    """
    Registers a device for a user.

    {"deviceId": "DEVICE_010", "addedBy": "user-1", "name": "Kitchen"}
    """

    registration_id = dispatcher.store.new_id()
    document = registration.model_dump(by_alias=True, exclude_none=True)
    dispatcher.store.set(join_path("registrations", registration_id), document)

    logger.info(f"✅ Device '{registration.device_id}' registered by '{registration.added_by}'")

    return {"id": registration_id, **document}
