"""
Async client for the Money Tracker HTTP API.

Any non-2xx answer or a body with status "error" raises RemoteServiceError
carrying the server message; connection problems raise NetworkUnavailableError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from ..config import API_URL, HTTP_TIMEOUT_SECONDS
from ..schemas import LoginResponse, Transaction, TransactionPayload
from .errors import NetworkUnavailableError, RemoteServiceError

logger = logging.getLogger(__name__)

UNCHANGED_MESSAGE = "Transaction data unchanged"


@dataclass
class UpdateResult:
    transaction: Optional[Transaction]
    message: Optional[str] = None

    @property
    def unchanged(self) -> bool:
        return self.transaction is None and self.message == UNCHANGED_MESSAGE


def _to_transaction(data: Any, user_id: int) -> Transaction:
    """Server row -> Transaction owned by user_id (the list rows carry no user_id)."""
    if not isinstance(data, dict):
        raise RemoteServiceError("Invalid data format received.")
    try:
        return Transaction(
            id=int(data["id"]),
            user_id=user_id,
            type=data.get("type"),
            amount=int(float(data["amount"])),
            title=data.get("title"),
            description=data.get("description"),
            tags=data.get("tags"),
            created_at=data.get("created_at"),
        )
    except (KeyError, TypeError, ValueError, ValidationError) as exc:
        raise RemoteServiceError(f"Invalid transaction data received: {exc}") from exc


class RemoteTransactionService:
    def __init__(
        self,
        base_url: str = API_URL,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ) -> None:
        self.base_url = base_url
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _call(
        self,
        method: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        url: Optional[str] = None,
    ) -> Any:
        url = url or self.base_url
        try:
            response = await self._client.request(method, url, params=params, json=body)
        except httpx.TransportError as exc:
            logger.warning("API call error (%s %s): %s", method, url, exc)
            raise NetworkUnavailableError(str(exc) or "An unexpected network error occurred.") from exc

        try:
            data = response.json()
        except ValueError:
            if not response.is_success:
                raise RemoteServiceError(
                    f"HTTP error {response.status_code}: {response.reason_phrase}. Non-JSON response.",
                    response.status_code,
                )
            raise RemoteServiceError("Invalid JSON response from server", response.status_code)

        error_body = isinstance(data, dict) and data.get("status") == "error"
        if not response.is_success or error_body:
            message = data.get("message") if isinstance(data, dict) else None
            logger.info("API call error (%s %s): %s %s", method, url, response.status_code, message)
            raise RemoteServiceError(
                message or f"Request failed with status {response.status_code}",
                response.status_code,
            )
        return data

    # --------------- auth ---------------
    async def register(self, username: str, password: str) -> Optional[str]:
        data = await self._call("POST", body={"action": "register", "username": username, "password": password})
        return data.get("message") if isinstance(data, dict) else None

    async def login(self, username: str, password: str) -> int:
        data = await self._call("POST", body={"action": "login", "username": username, "password": password})
        try:
            result = LoginResponse.model_validate(data)
        except ValidationError as exc:
            raise RemoteServiceError("Login failed: Invalid response from server.") from exc
        if result.user_id is None:
            raise RemoteServiceError(result.message or "Login failed: Invalid response from server.")
        return result.user_id

    # --------------- transactions ---------------
    async def list(self, user_id: int) -> List[Transaction]:
        data = await self._call("GET", params={"user_id": user_id})
        if not isinstance(data, list):
            logger.error("Received non-array data for transactions: %r", data)
            raise RemoteServiceError("Failed to load transactions: Invalid data format received.")
        return [_to_transaction(row, user_id) for row in data]

    async def create(self, payload: TransactionPayload) -> Transaction:
        body = {"action": "add_transaction", **payload.model_dump(exclude={"transaction_id"})}
        data = await self._call("POST", body=body)
        if not isinstance(data, dict) or not data.get("transaction"):
            raise RemoteServiceError(data.get("message") if isinstance(data, dict) else "Invalid response from server")
        return _to_transaction(data["transaction"], payload.user_id)

    async def update(self, payload: TransactionPayload) -> UpdateResult:
        data = await self._call("PUT", body=payload.model_dump())
        message = data.get("message") if isinstance(data, dict) else None
        if isinstance(data, dict) and data.get("transaction"):
            return UpdateResult(_to_transaction(data["transaction"], payload.user_id), message)
        return UpdateResult(None, message)

    async def delete(self, user_id: int, transaction_id: int) -> Optional[str]:
        data = await self._call("DELETE", params={"user_id": user_id, "transaction_id": transaction_id})
        return data.get("message") if isinstance(data, dict) else None

    async def health(self) -> bool:
        """True when the server answers GET /health."""
        url = str(httpx.URL(self.base_url).join("/health"))
        try:
            await self._call("GET", url=url)
        except NetworkUnavailableError:
            return False
        except RemoteServiceError:
            # reachable, just unhappy
            return True
        return True
