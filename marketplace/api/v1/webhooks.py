import logging

from fastapi import APIRouter, Request

from marketplace.core import config
from marketplace.schemas.response import SuccessResponse
from marketplace.services.payment_service import handle_event
from marketplace.services.webhook_verifier import parse_event, verify_signature

router = APIRouter()
log = logging.getLogger("uvicorn")


@router.post("/paystack", response_model=SuccessResponse)
async def payment_gateway_webhook(request: Request):
    """
    Receives signed gateway notifications.

    The signature is checked against the raw body before anything is parsed.
    Any non-2xx response makes the gateway redeliver the event.
    """
    body = await request.body()
    verify_signature(body, request.headers.get(config.SIGNATURE_HEADER), config.PAYMENT_SECRET_KEY)
    event = parse_event(body)
    log.info(f"Webhook received: {event.event}")
    await handle_event(event)
    return SuccessResponse()
