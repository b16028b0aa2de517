# ─────────────────────────────────────────────────────────────────
# routes/notifications.py - Notification Endpoints
#
# Users read their notifications and mark them read. The offline
# registration callable also lives here, since all it does is
# create a notification.
# ─────────────────────────────────────────────────────────────────

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from database import join_path
from handlers import CallableError, Dispatcher, RequestReceived, get_dispatcher
from models import Notification, OfflineRegistrationRequest

logger = logging.getLogger("routes")

router = APIRouter(
    prefix="/notifications",
    tags=["Notifications"]
)

# CallableError kinds and the HTTP status each one maps to
ERROR_STATUS = {
    "unauthenticated": 401,
    "invalid-argument": 400,
    "not-found": 404,
}


# ─────────────────────────────────────────────────────────────────
# GET /notifications?user_id=... - A user's notifications
# ─────────────────────────────────────────────────────────────────

@router.get("", response_model=List[Notification], response_model_by_alias=True)
def list_notifications(user_id: str = Query(...),
                       dispatcher: Dispatcher = Depends(get_dispatcher)):
    """Newest first."""

    rows = dispatcher.store.query("notifications", "userId", user_id)
    notifications = [Notification.model_validate(doc) for _, doc in rows]
    notifications.sort(key=lambda n: n.created_at, reverse=True)
    return notifications


# ─────────────────────────────────────────────────────────────────
# POST /notifications/offline-registration - Callable
# ─────────────────────────────────────────────────────────────────

@router.post("/offline-registration")
def offline_registration(body: OfflineRegistrationRequest,
                         x_user_id: Optional[str] = Header(default=None),
                         dispatcher: Dispatcher = Depends(get_dispatcher)):
    """
    registerOfflineDevice: the caller added a device that has not sent
    any data yet. The caller is identified by the X-User-Id header.

    401 when no caller, 400 when deviceId is missing.
    """

    event = RequestReceived(
        name="registerOfflineDevice",
        payload=body.model_dump(by_alias=True, exclude_none=True),
        caller=x_user_id,
    )
    try:
        return dispatcher.dispatch(event)
    except CallableError as e:
        logger.warning(f"registerOfflineDevice rejected: {e.kind} - {e.message}")
        raise HTTPException(
            status_code=ERROR_STATUS.get(e.kind, 400),
            detail=e.to_dict()
        )


# ─────────────────────────────────────────────────────────────────
# POST /notifications/{notification_id}/read - Mark as read
# ─────────────────────────────────────────────────────────────────

@router.post("/{notification_id}/read", response_model=Notification,
             response_model_by_alias=True)
def mark_read(notification_id: str, dispatcher: Dispatcher = Depends(get_dispatcher)):
    """`read` is the only field of a notification that ever changes."""

    path = join_path("notifications", notification_id)
    if not isinstance(dispatcher.store.get(path), dict):
        raise HTTPException(
            status_code=404,
            detail=f"Notification '{notification_id}' not found."
        )

    dispatcher.store.update(path, {"read": True})
    return Notification.model_validate(dispatcher.store.get(path))
