"""HTTP order service adapter for the marketplace order API.

POSTs the order payload as JSON with the idempotency key in the
``Idempotency-Key`` header. Response mapping:

    200 / 201         order created → receipt
    409               key already used → receipt of the existing order
    408, 429, 5xx     retryable failure
    other 4xx         non-retryable failure carrying the API's {code, message}
    transport errors  retryable failure
"""

import httpx
import structlog

from checkout.errors import SubmissionFailed
from checkout.submission.port import OrderReceipt, OrderService

logger = structlog.get_logger(__name__)

_RETRYABLE_STATUSES = {408, 429}


def _json_body(response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _error_body(response) -> dict:
    body = _json_body(response)
    return body["error"] if isinstance(body.get("error"), dict) else body


class HttpOrderService(OrderService):
    def __init__(self, base_url: str, timeout: float = 30.0, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def create_order(self, payload) -> OrderReceipt:
        key = payload.idempotency_key
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.post(
                    "/orders",
                    json=payload.to_dict(),
                    headers={"Idempotency-Key": key},
                )
        except httpx.TransportError as exc:
            logger.warning("Order service unreachable", idempotency_key=key, error=str(exc))
            raise SubmissionFailed("service_unreachable", str(exc) or type(exc).__name__, retryable=True) from exc

        if response.status_code in (200, 201, 409):
            body = _json_body(response)
            data = body.get("data") if isinstance(body.get("data"), dict) else body
            order_id = data.get("order_id") or data.get("orderId") or data.get("id")
            if not order_id:
                raise SubmissionFailed("invalid_response", "Order service did not return an order id", retryable=True)
            return OrderReceipt(order_id=str(order_id), idempotency_key=key, duplicate=response.status_code == 409)

        error = _error_body(response)
        code = str(error.get("code") or f"http_{response.status_code}")
        message = str(error.get("message") or response.reason_phrase or "Order creation failed")
        retryable = response.status_code in _RETRYABLE_STATUSES or response.status_code >= 500

        logger.warning(
            "Order service rejected submission",
            idempotency_key=key,
            status_code=response.status_code,
            code=code,
            retryable=retryable,
        )
        raise SubmissionFailed(code, message, retryable=retryable)
