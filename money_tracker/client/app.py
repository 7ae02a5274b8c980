"""
Client composition root: builds the state, cache, API client, connectivity
monitor and sync controller, and exposes the flows the UI triggers.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, List, Optional, Union

from .. import config
from ..schemas import Transaction
from . import views
from .connectivity import ConnectivityMonitor
from .errors import CacheError, RemoteServiceError
from .events import ConnectivityChanged, EventDispatcher, FormFieldChanged
from .form import TransactionForm
from .local_cache import LocalCacheStore
from .messages import MessageBoard
from .remote import RemoteTransactionService
from .state import AppState
from .sync import TransactionSyncController

logger = logging.getLogger(__name__)


class TrackerApp:
    def __init__(
        self,
        remote: Optional[RemoteTransactionService] = None,
        cache: Optional[LocalCacheStore] = None,
        cache_path: Union[str, Path, None] = None,
        online: bool = True,
        messages: Optional[MessageBoard] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.remote = remote or RemoteTransactionService(config.API_URL)
        self.cache = cache or LocalCacheStore(cache_path or config.CLIENT_CACHE_PATH)
        self.messages = messages or MessageBoard()
        self.dispatcher = EventDispatcher()
        self.connectivity = ConnectivityMonitor(self.dispatcher, online=online)
        self.form = TransactionForm()
        self.state = AppState()
        self.controller = TransactionSyncController(
            state=self.state,
            cache=self.cache,
            remote=self.remote,
            connectivity=self.connectivity,
            messages=self.messages,
            form=self.form,
            clock=clock,
        )
        self._started = False

    # --------------- lifecycle ---------------
    async def start(self, prefers_dark: bool = False) -> None:
        """Restore the persisted session and load its transactions."""
        if not self._started:
            self.dispatcher.subscribe(ConnectivityChanged, self.controller.on_connectivity_changed)
            self.dispatcher.subscribe(FormFieldChanged, self.form.handle)
            self._started = True
        self.state.restore(self.cache, prefers_dark=prefers_dark)
        if self.state.is_logged_in:
            logger.info("Restored session for user %s", self.state.user_id)
            await self.controller.fetch()

    async def aclose(self) -> None:
        await self.remote.aclose()
        self.cache.close()

    # --------------- auth ---------------
    async def login(self, username: str, password: str) -> bool:
        self.messages.clear()
        try:
            user_id = await self.remote.login(username, password)
        except RemoteServiceError as exc:
            self.messages.set_error(exc.message)
            return False

        try:
            self.state.sign_in(self.cache, user_id)
        except CacheError as exc:
            logger.warning("Session could not be persisted: %s", exc)
        self.form.clear()
        await self.controller.fetch(user_id)
        return True

    async def register(self, username: str, password: str) -> bool:
        self.messages.clear()
        try:
            message = await self.remote.register(username, password)
        except RemoteServiceError as exc:
            self.messages.set_error(exc.message)
            return False
        self.messages.set_success(message or "Registration successful! Please login.")
        self.state.show_register = False
        return True

    def logout(self) -> None:
        self.state.teardown(self.cache)
        self.controller.reset()
        self.form.clear()
        self.messages.clear()

    def show_register(self, visible: bool = True) -> None:
        self.state.show_register = visible
        self.messages.clear()

    # --------------- preferences / input ---------------
    def toggle_theme(self) -> str:
        try:
            return self.state.toggle_theme(self.cache)
        except CacheError as exc:
            logger.warning("Theme preference could not be saved: %s", exc)
            return self.state.theme

    async def set_online(self, online: bool) -> bool:
        return await self.connectivity.set_online(online)

    async def probe_connectivity(self) -> bool:
        return await self.connectivity.probe(self.remote)

    async def change_field(self, field: str, value: str) -> None:
        await self.dispatcher.dispatch(FormFieldChanged(field=field, value=value))

    def select_tag(self, tag: Optional[str]) -> None:
        self.state.selected_tag_filter = tag or None

    # --------------- transactions ---------------
    async def submit(self) -> bool:
        return await self.controller.submit()

    def edit(self, transaction: Transaction) -> None:
        self.controller.edit(transaction)

    async def delete(self, transaction_id: int, *, confirmed: bool) -> bool:
        return await self.controller.delete(transaction_id, confirmed=confirmed)

    # --------------- derived views ---------------
    @property
    def transactions(self) -> List[Transaction]:
        return self.controller.transactions

    @property
    def visible_transactions(self) -> List[Transaction]:
        return views.filter_by_tag(self.transactions, self.state.selected_tag_filter)

    @property
    def unique_tags(self) -> List[str]:
        return views.unique_tags(self.transactions)

    @property
    def summary(self) -> views.Summary:
        return views.summarize(self.transactions)

    @property
    def filtered_summary(self) -> views.Summary:
        return views.filtered_summary(self.transactions, self.state.selected_tag_filter)
