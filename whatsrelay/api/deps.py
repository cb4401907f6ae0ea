"""
FastAPI dependencies for the long-lived components created in the lifespan.
"""
from fastapi import Request

from whatsrelay.integrations.messaging_base import MessagingClient
from whatsrelay.services.media_storage import MediaStorage
from whatsrelay.services.session_state import ConnectionState
from whatsrelay.services.webhook_dispatcher import WebhookDispatcher


def get_messaging_client(request: Request) -> MessagingClient:
    return request.app.state.messaging_client


def get_connection_state(request: Request) -> ConnectionState:
    return request.app.state.connection_state


def get_dispatcher(request: Request) -> WebhookDispatcher:
    return request.app.state.dispatcher


def get_media_storage(request: Request) -> MediaStorage:
    return request.app.state.media_storage
