import time
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import httpx
import structlog

from shared.observability import gateway_request_duration_seconds

from .errors import GatewayError

logger = structlog.get_logger(__name__)


@runtime_checkable
class GatewayClient(Protocol):
    """What the lifecycle service needs from a payment gateway."""

    async def create_order(
        self, amount_minor: int, currency: str, notes: Dict[str, Any]
    ) -> Dict[str, Any]:
        ...

    async def fetch_payment(self, payment_id: str) -> Dict[str, Any]:
        ...


class RazorpayGateway:
    """Razorpay REST client. Every call is bounded by `timeout` seconds."""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str = "https://api.razorpay.com/v1",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._auth = httpx.BasicAuth(key_id, key_secret)
        self._base_url = base_url.rstrip("/")
        self._timeout = httpx.Timeout(timeout)
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            auth=self._auth,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _request(self, operation: str, method: str, path: str, **kwargs) -> Dict[str, Any]:
        started = time.perf_counter()
        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
                response.raise_for_status()
                body = response.json()
        except httpx.TimeoutException as exc:
            logger.warning("gateway_timeout", operation=operation)
            raise GatewayError(f"payment gateway timed out during {operation}") from exc
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "gateway_http_error",
                operation=operation,
                status_code=exc.response.status_code,
            )
            raise GatewayError(
                f"payment gateway rejected {operation} ({exc.response.status_code})"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("gateway_unreachable", operation=operation, error=str(exc))
            raise GatewayError(f"payment gateway {operation} failed") from exc
        finally:
            gateway_request_duration_seconds.labels(operation=operation).observe(
                time.perf_counter() - started
            )

        if not isinstance(body, dict):
            raise GatewayError(f"payment gateway returned a malformed {operation} response")
        return body

    async def create_order(
        self, amount_minor: int, currency: str, notes: Dict[str, Any]
    ) -> Dict[str, Any]:
        payload = {
            "amount": amount_minor,
            "currency": currency,
            "payment_capture": 1,
            "notes": notes,
        }
        return await self._request("create_order", "POST", "/orders", json=payload)

    async def fetch_payment(self, payment_id: str) -> Dict[str, Any]:
        return await self._request("fetch_payment", "GET", f"/payments/{payment_id}")
