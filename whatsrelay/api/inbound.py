"""
Inbound webhook endpoints.

- POST /api/webhook/whatsapp  - third parties post arbitrary JSON events that are
  relayed to the configured destination as ExternalEvents
- POST /api/webhook/evolution - session and message callbacks from the Evolution
  API gateway, queued for the session bridge

Callers are not authenticated.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from whatsrelay.api.deps import get_dispatcher, get_messaging_client
from whatsrelay.errors import ValidationError
from whatsrelay.integrations.evolution import EvolutionClient
from whatsrelay.integrations.messaging_base import MessagingClient
from whatsrelay.schemas.api_responses import ok
from whatsrelay.schemas.domain_events import ExternalEvent
from whatsrelay.services.webhook_dispatcher import WebhookDispatcher

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/webhook", tags=["inbound"])


async def _json_object(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Request body must be valid JSON")
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


@router.post("/whatsapp")
async def external_event(
    request: Request,
    dispatcher: WebhookDispatcher = Depends(get_dispatcher),
):
    body = await _json_object(request)
    event = ExternalEvent(
        source=request.headers.get("X-Webhook-Source") or "external",
        event_type=str(body.get("type") or body.get("event") or "external"),
        data=body,
    )
    dispatcher.schedule(event)
    logger.info("External event accepted: %s", event.event_type, extra={"event_id": event.id})
    return ok({"eventId": event.id}, message="Event accepted")


@router.post("/evolution")
async def evolution_callback(
    request: Request,
    client: MessagingClient = Depends(get_messaging_client),
):
    if not isinstance(client, EvolutionClient):
        raise HTTPException(status_code=404, detail="Evolution API client is not enabled")
    body = await _json_object(request)
    queued = await client.handle_webhook(body)
    return ok({"queued": queued})
