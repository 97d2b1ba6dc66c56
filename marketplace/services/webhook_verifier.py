import hashlib
import hmac
import logging
from typing import Optional

from pydantic import ValidationError

from marketplace.core.errors import InvalidPayload, InvalidSignature
from marketplace.schemas.webhook import WebhookEvent, webhook_event_adapter

log = logging.getLogger(__name__)


def compute_signature(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha512).hexdigest()


def verify_signature(body: bytes, signature: Optional[str], secret: str) -> None:
    """
    Fails closed unless `signature` is the hex HMAC-SHA512 of the exact raw body.
    """
    if not secret:
        log.error("Webhook rejected: no gateway secret configured")
        raise InvalidSignature()
    if not signature:
        log.error("Webhook rejected: missing signature header")
        raise InvalidSignature("Missing webhook signature")
    try:
        provided = bytes.fromhex(signature.strip())
    except ValueError:
        log.error("Webhook rejected: signature header is not hex")
        raise InvalidSignature()

    expected = hmac.new(secret.encode(), body, hashlib.sha512).digest()
    if not hmac.compare_digest(expected, provided):
        log.error("Webhook rejected: signature mismatch")
        raise InvalidSignature()


def parse_event(body: bytes) -> WebhookEvent:
    """Decodes a verified body into exactly one known event variant."""
    try:
        return webhook_event_adapter.validate_json(body)
    except ValidationError as e:
        log.error(f"Webhook rejected: payload failed validation ({e.error_count()} errors)")
        raise InvalidPayload()
