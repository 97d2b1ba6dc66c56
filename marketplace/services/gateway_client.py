"""
HTTP client for the external payment gateway (Paystack-compatible API).

Covers the three calls the settlement flow needs: hosted invoice creation,
transfer recipient creation and transfers for withdrawals. Amounts are sent
in minor units.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from marketplace.core import config
from marketplace.core.errors import GatewayError

log = logging.getLogger(__name__)


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * config.MINOR_UNITS_PER_MAJOR).to_integral_value())


async def _send(method: str, route: str, body: Optional[Dict[str, Any]], expected_status: int) -> Dict[str, Any]:
    """
    Sends one request to the gateway and returns the decoded `data` envelope.

    Raises:
        GatewayError: on transport failure, unexpected status, undecodable body or `status: false`
    """
    headers = {
        "Authorization": f"Bearer {config.PAYMENT_SECRET_KEY}",
        "Content-Type": "application/json",
    }
    url = f"{config.PAYMENT_API_URL}{route}"
    try:
        async with httpx.AsyncClient(timeout=config.GATEWAY_TIMEOUT) as client:
            response = await client.request(method, url, json=body, headers=headers)
    except httpx.HTTPError as e:
        log.error(f"Failed to send gateway request {route}: {e}")
        raise GatewayError()

    if response.status_code != expected_status:
        log.error(f"Gateway {route} returned HTTP {response.status_code}: {response.text}")
        raise GatewayError()

    try:
        decoded = response.json()
    except ValueError as e:
        log.error(f"Failed to decode gateway response for {route}: {e}")
        raise GatewayError()

    log.debug(f"Response received from gateway {route}: {decoded}")
    if not decoded.get("status"):
        log.error(f"Gateway rejected {route}: {decoded.get('message')}")
        raise GatewayError(decoded.get("message") or GatewayError.default_message)
    return decoded.get("data") or {}


async def create_invoice(email: str, amount: Decimal, metadata: Dict[str, Any]) -> str:
    """Creates a hosted payment page and returns its authorization URL."""
    data = await _send(
        "POST",
        "/transaction/initialize",
        {"email": email, "amount": to_minor_units(amount), "metadata": metadata},
        expected_status=200,
    )
    url = data.get("authorization_url")
    if not url:
        log.error(f"Gateway invoice response has no authorization_url: {data}")
        raise GatewayError()
    return url


async def create_transfer_recipient(account_name: str, account_number: str, bank_code: str) -> str:
    data = await _send(
        "POST",
        "/transferrecipient",
        {
            "type": "nuban",
            "name": account_name,
            "account_number": account_number,
            "bank_code": bank_code,
            "currency": config.PAYMENT_CURRENCY,
        },
        expected_status=201,
    )
    recipient_code = data.get("recipient_code")
    if not recipient_code:
        raise GatewayError("Transfer recipient was not created")
    return recipient_code


async def initiate_transfer(recipient_code: str, amount: Decimal, reason: str) -> Dict[str, Any]:
    return await _send(
        "POST",
        "/transfer",
        {
            "source": "balance",
            "reason": reason,
            "amount": to_minor_units(amount),
            "recipient": recipient_code,
        },
        expected_status=200,
    )


async def transfer_to_bank_account(account_name: str, account_number: str, bank_code: str, amount: Decimal) -> Dict[str, Any]:
    """Pays `amount` out to a bank account. Nothing is recorded locally here."""
    recipient_code = await create_transfer_recipient(account_name, account_number, bank_code)
    return await initiate_transfer(recipient_code, amount, "User placed withdrawal request")
