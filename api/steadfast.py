import asyncio
import json
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

import aiohttp

from database.models.order import Order
from utils.errors import ErrorCategory, SteadfastError
from utils.logger import get_logger

log = get_logger("[SteadfastAPI]")

MAX_BULK_ORDERS = 500


def decimal_default_serializer(obj):
    if isinstance(obj, Decimal):
        return float(obj)
    raise TypeError(f"Object of type {obj.__class__.__name__} is not JSON serializable")


@dataclass
class Consignment:
    consignment_id: Optional[int]
    invoice: str
    tracking_code: str
    status: Optional[str] = None


@dataclass
class BulkItemResult:
    invoice: str
    tracking_code: Optional[str]
    consignment_id: Optional[int]
    status: Optional[str]
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "success" and bool(self.tracking_code)


def build_consignment_payload(order: Order) -> Dict[str, Any]:
    """
    Converts a local order into the body Steadfast expects for /create_order.
    """
    notes = (order.notes or "").strip()
    return {
        "invoice": order.order_id,
        "recipient_name": order.name.strip(),
        "recipient_phone": str(order.number).strip(),
        "recipient_address": order.address.strip(),
        "cod_amount": float(order.amount),
        "note": notes or f"Order ID: {order.order_id}",
        "item_description": (order.order_items or "").strip(),
    }


class SteadfastClient:
    def __init__(self, base_url: str, api_key: Optional[str], secret_key: Optional[str], timeout: float = 30):
        self._base_url = (base_url or "").rstrip("/")
        self._api_key = api_key
        self._secret_key = secret_key
        self._headers = {
            "Api-Key": api_key or "",
            "Secret-Key": secret_key or "",
            "Content-Type": "application/json",
        }
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        await self._get_session()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=self._headers,
                timeout=self._timeout,
                json_serialize=lambda obj: json.dumps(obj, default=decimal_default_serializer),
            )
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    def _check_config(self) -> None:
        if not (self._base_url and self._api_key and self._secret_key):
            raise SteadfastError("Steadfast API credentials missing!", category=ErrorCategory.UNAUTHORIZED)

    async def _make_request(
            self,
            method: str,
            path: str,
            json_payload: Optional[Dict] = None,
            error_message: str = "Steadfast request failed",
    ) -> Any:
        """
        Sends the request and returns the decoded body.
        Raises SteadfastError on non-OK HTTP, a `status` other than 200,
        a body that is not JSON, or a transport failure.
        """
        self._check_config()
        session = await self._get_session()
        url = self._base_url + path
        try:
            async with session.request(method, url, json=json_payload) as response:
                text = await response.text()
                http_status = response.status
        except aiohttp.ClientError as e:
            log.error(f"Network error on {method} {path}: {e}")
            raise SteadfastError(f"Network error: {e}", category=ErrorCategory.NETWORK) from e
        except asyncio.TimeoutError as e:
            log.error(f"Timeout on {method} {path}")
            raise SteadfastError("Network error: request timed out", category=ErrorCategory.NETWORK) from e

        try:
            data = json.loads(text)
        except ValueError:
            # Some endpoints answer with plain text, e.g. "Unauthorized Access"
            log.error(f"Steadfast API ({http_status}) {method} {path}: non-JSON body {text!r}")
            raise SteadfastError(text.strip() or error_message, http_status=http_status)

        # Only the bulk endpoint may answer with a bare array
        if isinstance(data, dict) and data.get("status") != 200:
            message = data.get("message") or error_message
            log.error(f"Steadfast API ({http_status}) {method} {path}: {data}")
            raise SteadfastError(message, http_status=http_status)

        if not 200 <= http_status < 300:
            message = data.get("message") if isinstance(data, dict) else None
            log.error(f"Steadfast API ({http_status}) {method} {path}: {data}")
            raise SteadfastError(message or f"{error_message} (HTTP {http_status})", http_status=http_status)

        log.debug(f"{method} {path} -> {http_status}")
        return data

    async def create_order(self, payload: Dict[str, Any]) -> Consignment:
        """
        Creates a single consignment (POST /create_order).
        """
        data = await self._make_request(
            "POST", "/create_order", json_payload=payload,
            error_message="Failed to create Steadfast order",
        )
        consignment = data.get("consignment") if isinstance(data, dict) else None
        if not consignment or not consignment.get("tracking_code"):
            raise SteadfastError("Steadfast did not return a tracking code")

        log.info(f"Consignment created for invoice {payload.get('invoice')}: {consignment['tracking_code']}")
        return Consignment(
            consignment_id=consignment.get("consignment_id"),
            invoice=str(consignment.get("invoice") or payload.get("invoice")),
            tracking_code=consignment["tracking_code"],
            status=consignment.get("status"),
        )

    async def create_bulk_orders(self, payloads: List[Dict[str, Any]]) -> List[BulkItemResult]:
        """
        Creates up to 500 consignments at once (POST /create_order/bulk-order).
        The API wants the array JSON-encoded inside the `data` field.
        """
        if not payloads:
            raise SteadfastError("No orders to send")
        if len(payloads) > MAX_BULK_ORDERS:
            raise SteadfastError(f"Maximum {MAX_BULK_ORDERS} orders per request")

        encoded = json.dumps(payloads, default=decimal_default_serializer)
        log.debug(f"Sending {len(payloads)} orders to /create_order/bulk-order")
        data = await self._make_request(
            "POST", "/create_order/bulk-order", json_payload={"data": encoded},
            error_message="Bulk order failed",
        )

        items = None
        if isinstance(data, list):
            items = data
        elif isinstance(data, dict):
            for key in ("data", "orders"):
                if isinstance(data.get(key), list):
                    items = data[key]
                    break
        if items is None:
            message = data.get("message") if isinstance(data, dict) else None
            raise SteadfastError(message or "Bulk order failed")

        results = [
            BulkItemResult(
                invoice=str(item.get("invoice")),
                tracking_code=item.get("tracking_code"),
                consignment_id=item.get("consignment_id"),
                status=item.get("status"),
                error=item.get("message") or item.get("error"),
            )
            for item in items
        ]
        log.info(f"Bulk order: {sum(r.ok for r in results)} of {len(results)} accepted.")
        return results

    async def _status(self, path: str) -> str:
        data = await self._make_request("GET", path, error_message="Failed to get status")
        delivery_status = data.get("delivery_status") if isinstance(data, dict) else None
        if not delivery_status:
            raise SteadfastError("Failed to get status")
        return delivery_status

    async def status_by_cid(self, consignment_id: str) -> str:
        return await self._status(f"/status_by_cid/{consignment_id}")

    async def status_by_invoice(self, invoice: str) -> str:
        return await self._status(f"/status_by_invoice/{invoice}")

    async def status_by_tracking_code(self, tracking_code: str) -> str:
        return await self._status(f"/status_by_trackingcode/{tracking_code}")

    async def get_balance(self) -> float:
        data = await self._make_request("GET", "/get_balance", error_message="Failed to get balance")
        if not isinstance(data, dict) or "current_balance" not in data:
            raise SteadfastError("Failed to get balance")
        return float(data["current_balance"])
