import logging
from typing import Dict, Any, Optional

import httpx

from app.errors import GatewayError
from app.gateways.base import BaseGateway

logger = logging.getLogger(__name__)


def _error_description(response: httpx.Response) -> str:
    """Pull `error.description` out of a Razorpay error body, if there is one."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("description"):
        return error["description"]
    return "Unknown error"


class RazorpayGateway(BaseGateway):
    """
    Razorpay REST client.
    Auth: HTTP basic with key id / key secret
    Amounts: integer paise
    Errors: {"error": {"code": ..., "description": ...}}
    """

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        api_base: str = "https://api.razorpay.com",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.key_id = key_id
        self.key_secret = key_secret
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @property
    def gateway_name(self) -> str:
        return "razorpay"

    async def create_refund(
        self, payment_id: str, amount_minor: int, notes: Dict[str, str]
    ) -> Dict[str, Any]:
        url = f"{self.api_base}/v1/payments/{payment_id}/refund"
        async with httpx.AsyncClient(
            auth=(self.key_id, self.key_secret),
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            try:
                resp = await client.post(url, json={"amount": amount_minor, "notes": notes})
            except httpx.HTTPError as e:
                logger.error(f"Razorpay refund request for {payment_id} failed: {e}")
                raise GatewayError(f"Razorpay refund failed: {e}") from e

        if resp.status_code >= 400:
            description = _error_description(resp)
            logger.warning(
                f"Razorpay rejected refund for {payment_id} "
                f"(status={resp.status_code}): {description}"
            )
            raise GatewayError(f"Razorpay refund failed: {description}")

        refund = resp.json()
        if not refund.get("id"):
            raise GatewayError("Razorpay refund failed: response carried no refund id")
        return refund
