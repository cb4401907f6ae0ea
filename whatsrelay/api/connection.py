"""
Connection management - session status, connect/disconnect and QR code for the dashboard.
"""
import logging

from fastapi import APIRouter, Depends

from whatsrelay.api.deps import get_connection_state, get_messaging_client
from whatsrelay.errors import MessagingClientError
from whatsrelay.integrations.messaging_base import MessagingClient
from whatsrelay.schemas.api_responses import ok
from whatsrelay.services.session_state import DISCONNECTED, ConnectionState

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/connection", tags=["connection"])


@router.get("/status")
async def connection_status(state: ConnectionState = Depends(get_connection_state)):
    return ok(state.snapshot().as_status_payload())


@router.post("/connect")
async def connect(
    client: MessagingClient = Depends(get_messaging_client),
    state: ConnectionState = Depends(get_connection_state),
):
    """Start the session when disconnected. The QR code arrives asynchronously; poll /qr-code."""
    if state.status == DISCONNECTED and await state.begin_connecting():
        try:
            await client.connect()
        except MessagingClientError:
            await state.on_disconnected("connect failed")
            raise

    snapshot = state.snapshot()
    return ok({"qrCode": snapshot.qr_code, "status": snapshot.status})


@router.post("/disconnect")
async def disconnect(
    client: MessagingClient = Depends(get_messaging_client),
    state: ConnectionState = Depends(get_connection_state),
):
    try:
        await client.disconnect()
    except MessagingClientError as e:
        # The session is treated as gone either way
        logger.warning("Messaging client logout failed: %s", e.message)
    await state.on_disconnected("disconnect request")
    return ok(message="Disconnected successfully")


@router.post("/qr-code")
async def qr_code(state: ConnectionState = Depends(get_connection_state)):
    return ok({"qrCode": state.snapshot().qr_code})
