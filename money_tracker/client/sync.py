"""
Transaction sync controller.

Owns the in-memory transaction list shown to the user and decides, for each
operation, whether it goes to the API (mirrored into the local cache on
success) or straight to the local cache (while offline).

The in-memory list only changes after the authoritative write succeeded:
the API call when online, the local cache write when offline.

Records written while offline get a placeholder id (milliseconds since the
epoch) and unsynced=True. They are not replayed to the server; the next
successful online fetch replaces the user's cache with the server state.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional

from ..schemas import Transaction, TransactionPayload
from .connectivity import ConnectivityMonitor
from .errors import CacheError, NetworkUnavailableError, RemoteServiceError, TransactionValidationError
from .events import ConnectivityChanged
from .form import TransactionForm
from .local_cache import LocalCacheStore
from .messages import MessageBoard
from .remote import RemoteTransactionService
from .state import AppState

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    FETCH = "fetch"
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


class OperationState(str, Enum):
    IDLE = "idle"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED_REMOTE = "failed_remote"
    FAILED_LOCAL = "failed_local"


class TransactionSyncController:
    def __init__(
        self,
        state: AppState,
        cache: LocalCacheStore,
        remote: RemoteTransactionService,
        connectivity: ConnectivityMonitor,
        messages: MessageBoard,
        form: TransactionForm,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.state = state
        self.cache = cache
        self.remote = remote
        self.connectivity = connectivity
        self.messages = messages
        self.form = form
        self._clock = clock

        self.transactions: List[Transaction] = []
        self.status: Dict[Operation, OperationState] = {op: OperationState.IDLE for op in Operation}
        self.is_loading = False
        self._last_placeholder_id = 0

    # --------------- helpers ---------------
    def _begin(self, op: Operation) -> None:
        self.status[op] = OperationState.IN_FLIGHT
        self.is_loading = True

    def _finish(self, op: Operation, outcome: OperationState) -> None:
        self.status[op] = outcome
        self.is_loading = False

    def _now(self) -> str:
        # same format as the server's CURRENT_TIMESTAMP (UTC)
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

    def _next_placeholder_id(self) -> int:
        candidate = int(self._clock() * 1000)
        self._last_placeholder_id = max(candidate, self._last_placeholder_id + 1)
        return self._last_placeholder_id

    def _find(self, transaction_id: int) -> Optional[Transaction]:
        return next((tx for tx in self.transactions if tx.id == transaction_id), None)

    def _replace(self, record: Transaction) -> None:
        self.transactions = [record if tx.id == record.id else tx for tx in self.transactions]

    def _remove(self, transaction_id: int) -> None:
        self.transactions = [tx for tx in self.transactions if tx.id != transaction_id]

    def _mirror_put(self, record: Transaction) -> None:
        try:
            self.cache.put(record)
        except CacheError as exc:
            logger.error("Local cache update failed for transaction %s: %s", record.id, exc)
            self.messages.set_error(f"Saved on the server, but the local cache could not be updated: {exc}")

    async def _went_offline(self, exc: NetworkUnavailableError) -> None:
        logger.warning("Server unreachable, switching to offline mode: %s", exc)
        await self.connectivity.set_online(False)

    def _user_changed(self, user_id: int) -> bool:
        # signed out or switched user while the request was in flight
        if self.state.user_id == user_id:
            return False
        logger.info("Dropping fetch result for user %s, signed-in user is now %s", user_id, self.state.user_id)
        self._finish(Operation.FETCH, OperationState.IDLE)
        return True

    @property
    def pending_count(self) -> int:
        return sum(1 for tx in self.transactions if tx.unsynced)

    # --------------- fetch ---------------
    async def fetch(self, user_id: Optional[int] = None) -> List[Transaction]:
        user_id = user_id if user_id is not None else self.state.user_id
        if user_id is None:
            return self.transactions
        self.messages.clear()
        self._begin(Operation.FETCH)

        if not self.connectivity.is_online:
            self.messages.set_error("You are offline. Displaying locally stored data.")
            try:
                local = self.cache.get_all(user_id)
            except CacheError as exc:
                self.messages.set_error(f"Error fetching local data: {exc}")
                self.transactions = []
                self._finish(Operation.FETCH, OperationState.FAILED_LOCAL)
                return self.transactions
            self.transactions = local
            if not local:
                self.messages.set_success("No local transactions found for offline display.")
            self._finish(Operation.FETCH, OperationState.SUCCEEDED)
            return self.transactions

        try:
            rows = await self.remote.list(user_id)
        except RemoteServiceError as exc:
            logger.warning("Fetching transactions for user %s failed: %s", user_id, exc)
            if self._user_changed(user_id):
                return self.transactions
            self.messages.set_error(f"Failed to fetch from server: {exc.message}. Trying local data...")
            return self._fall_back_to_cache(user_id)

        if self._user_changed(user_id):
            return self.transactions

        self.transactions = rows
        try:
            self.cache.replace_all(rows, user_id)
        except CacheError as exc:
            logger.error("Caching fetched transactions failed: %s", exc)
            self.messages.set_error(f"Transactions loaded, but the local cache could not be updated: {exc}")
        else:
            logger.info("Transactions fetched from API and saved to local cache (user %s, %d rows).", user_id, len(rows))
        self._finish(Operation.FETCH, OperationState.SUCCEEDED)
        return self.transactions

    def _fall_back_to_cache(self, user_id: int) -> List[Transaction]:
        try:
            local = self.cache.get_all(user_id)
        except CacheError as exc:
            self.messages.set_error(f"Failed to fetch from server and DB: {exc}")
            self.transactions = []
            self._finish(Operation.FETCH, OperationState.FAILED_LOCAL)
            return self.transactions

        if local:
            self.transactions = local
            self.messages.set_success("Displaying locally cached transactions.")
        else:
            self.messages.set_error(f"Failed to fetch from server and no local data for user {user_id}.")
            self.transactions = []
        self._finish(Operation.FETCH, OperationState.FAILED_REMOTE)
        return self.transactions

    # --------------- add / update ---------------
    async def submit(self) -> bool:
        """Add a new transaction, or update the one being edited."""
        if not self.state.is_logged_in:
            self.messages.set_error("Cannot save transaction: User not logged in.")
            return False
        try:
            payload = self.form.build_payload(self.state.user_id)
        except TransactionValidationError as exc:
            self.messages.set_error(str(exc))
            return False
        self.messages.clear()

        if self.form.is_editing:
            return await self._update(payload)
        return await self._add(payload)

    async def _add(self, payload: TransactionPayload) -> bool:
        self._begin(Operation.ADD)
        if self.connectivity.is_online:
            try:
                created = await self.remote.create(payload)
            except NetworkUnavailableError as exc:
                await self._went_offline(exc)
            except RemoteServiceError as exc:
                self.messages.set_error(exc.message)
                self._finish(Operation.ADD, OperationState.FAILED_REMOTE)
                return False
            else:
                self.transactions = [created] + self.transactions
                self._mirror_put(created)
                self.messages.set_success("Transaction added successfully!")
                self.form.clear()
                self._finish(Operation.ADD, OperationState.SUCCEEDED)
                return True

        self.messages.set_error("You are offline. This change is stored on this device only.")
        record = Transaction(
            id=self._next_placeholder_id(),
            created_at=self._now(),
            unsynced=True,
            **payload.model_dump(exclude={"transaction_id"}),
        )
        try:
            self.cache.put(record)
        except CacheError as exc:
            self.messages.set_error(f"Failed to save locally: {exc}")
            self._finish(Operation.ADD, OperationState.FAILED_LOCAL)
            return False
        self.transactions = [record] + self.transactions
        self.messages.set_success("Transaction added locally (offline).")
        self.form.clear()
        self._finish(Operation.ADD, OperationState.SUCCEEDED)
        return True

    async def _update(self, payload: TransactionPayload) -> bool:
        transaction_id = payload.transaction_id
        self._begin(Operation.UPDATE)
        if self.connectivity.is_online:
            try:
                result = await self.remote.update(payload)
            except NetworkUnavailableError as exc:
                await self._went_offline(exc)
            except RemoteServiceError as exc:
                self.messages.set_error(exc.message)
                self._finish(Operation.UPDATE, OperationState.FAILED_REMOTE)
                return False
            else:
                if result.transaction is not None:
                    self._replace(result.transaction)
                    self._mirror_put(result.transaction)
                    self.messages.set_success("Transaction updated successfully!")
                elif result.unchanged:
                    self.messages.set_success("Transaction data was unchanged.")
                else:
                    self.messages.set_success(result.message or "Transaction updated.")
                self.form.clear()
                self._finish(Operation.UPDATE, OperationState.SUCCEEDED)
                return True

        self.messages.set_error("You are offline. This change is stored on this device only.")
        original = self._find(transaction_id)
        record = Transaction(
            id=transaction_id,
            created_at=(original.created_at if original and original.created_at else self._now()),
            unsynced=True,
            **payload.model_dump(exclude={"transaction_id"}),
        )
        try:
            self.cache.put(record)
        except CacheError as exc:
            self.messages.set_error(f"Failed to save locally: {exc}")
            self._finish(Operation.UPDATE, OperationState.FAILED_LOCAL)
            return False
        self._replace(record)
        self.messages.set_success("Transaction updated locally (offline).")
        self.form.clear()
        self._finish(Operation.UPDATE, OperationState.SUCCEEDED)
        return True

    # --------------- delete ---------------
    async def delete(self, transaction_id: int, *, confirmed: bool) -> bool:
        """Delete a transaction; nothing happens unless the caller confirmed."""
        if not confirmed:
            logger.debug("Delete of transaction %s not confirmed", transaction_id)
            return False
        if not self.state.is_logged_in:
            self.messages.set_error("Cannot delete: User not logged in.")
            return False
        self.messages.clear()
        self._begin(Operation.DELETE)

        if self.connectivity.is_online:
            try:
                message = await self.remote.delete(self.state.user_id, transaction_id)
            except NetworkUnavailableError as exc:
                await self._went_offline(exc)
            except RemoteServiceError as exc:
                self.messages.set_error(exc.message)
                self._finish(Operation.DELETE, OperationState.FAILED_REMOTE)
                return False
            else:
                self._remove(transaction_id)
                try:
                    self.cache.delete(transaction_id)
                except CacheError as exc:
                    logger.error("Local cache delete failed for transaction %s: %s", transaction_id, exc)
                    self.messages.set_error(f"Deleted on the server, but the local cache could not be updated: {exc}")
                self.messages.set_success(message or "Transaction deleted successfully!")
                if self.form.editing_transaction_id == transaction_id:
                    self.form.clear()
                self._finish(Operation.DELETE, OperationState.SUCCEEDED)
                return True

        self.messages.set_error("You are offline. The transaction is deleted on this device only.")
        try:
            self.cache.delete(transaction_id)
        except CacheError as exc:
            self.messages.set_error(f"Failed to delete locally: {exc}")
            self._finish(Operation.DELETE, OperationState.FAILED_LOCAL)
            return False
        self._remove(transaction_id)
        self.messages.set_success("Transaction deleted locally (offline).")
        if self.form.editing_transaction_id == transaction_id:
            self.form.clear()
        self._finish(Operation.DELETE, OperationState.SUCCEEDED)
        return True

    # --------------- editing ---------------
    def edit(self, transaction: Transaction) -> None:
        self.form.load(transaction)
        self.messages.clear()

    def cancel_edit(self) -> None:
        self.form.clear()

    # --------------- connectivity ---------------
    async def on_connectivity_changed(self, event: ConnectivityChanged) -> None:
        if event.online:
            if self.state.is_logged_in:
                await self.fetch()
            self.messages.set_success("You are back online!")
        else:
            self.messages.set_error("You are currently offline. Some features might be limited.")

    def reset(self) -> None:
        self.transactions = []
        self.status = {op: OperationState.IDLE for op in Operation}
        self.is_loading = False
