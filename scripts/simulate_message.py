"""
Simulate gateway callbacks and third-party events against a running relay.

Usage:
    python scripts/simulate_message.py
    python scripts/simulate_message.py --kind connection --state open
    python scripts/simulate_message.py --kind external --event order.created
    python scripts/simulate_message.py --phone 15125559999 --body "Is the shop open today?"
"""
import argparse
import asyncio
import logging
import time
import uuid

import httpx

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

BASE_URL = "http://localhost:5000"


async def simulate_inbound_message(phone: str, body: str, instance: str):
    """Post an Evolution messages.upsert callback for an inbound text message."""
    payload = {
        "event": "messages.upsert",
        "instance": instance,
        "data": {
            "key": {
                "id": f"SIM{uuid.uuid4().hex[:16].upper()}",
                "remoteJid": f"{phone}@s.whatsapp.net",
                "fromMe": False,
            },
            "message": {"conversation": body},
            "messageTimestamp": int(time.time()),
        },
    }
    async with httpx.AsyncClient(timeout=30) as client:
        resp = await client.post(f"{BASE_URL}/api/webhook/evolution", json=payload)
        logger.info("Inbound message response: %s %s", resp.status_code, resp.json())
        return resp


async def simulate_connection(state: str, instance: str):
    """Post an Evolution connection.update callback (open / close)."""
    payload = {"event": "connection.update", "instance": instance, "data": {"state": state}}
    async with httpx.AsyncClient(timeout=30) as client:
        resp = await client.post(f"{BASE_URL}/api/webhook/evolution", json=payload)
        logger.info("Connection update response: %s %s", resp.status_code, resp.json())
        return resp


async def simulate_external_event(event: str, source: str):
    """Post a third-party event to the relay endpoint."""
    payload = {"type": event, "id": uuid.uuid4().hex, "amount": 129.90}
    async with httpx.AsyncClient(timeout=30) as client:
        resp = await client.post(
            f"{BASE_URL}/api/webhook/whatsapp",
            json=payload,
            headers={"X-Webhook-Source": source},
        )
        logger.info("External event response: %s %s", resp.status_code, resp.json())
        return resp


async def main():
    global BASE_URL
    parser = argparse.ArgumentParser(description="Simulate relay inputs")
    parser.add_argument("--kind", default="message", choices=["message", "connection", "external"])
    parser.add_argument("--base-url", default=BASE_URL)
    parser.add_argument("--instance", default="whatsapp-web-client")
    parser.add_argument("--phone", default="15125559876")
    parser.add_argument("--body", default="Hi, do you deliver on Sundays?")
    parser.add_argument("--state", default="open", choices=["open", "close"])
    parser.add_argument("--event", default="order.created")
    parser.add_argument("--source", default="shop")
    args = parser.parse_args()
    BASE_URL = args.base_url.rstrip("/")

    logger.info("Simulating %s against %s...", args.kind, BASE_URL)

    if args.kind == "message":
        await simulate_inbound_message(args.phone, args.body, args.instance)
    elif args.kind == "connection":
        await simulate_connection(args.state, args.instance)
    elif args.kind == "external":
        await simulate_external_event(args.event, args.source)


if __name__ == "__main__":
    asyncio.run(main())
