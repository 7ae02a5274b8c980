from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .errors import CacheError
from .local_cache import LocalCacheStore

logger = logging.getLogger(__name__)

USER_ID_KEY = "userId"
THEME_KEY = "themePreference"
THEMES = ("light", "dark")


@dataclass
class AppState:
    """Session and view state shared by the client components."""

    user_id: Optional[int] = None
    theme: str = "light"
    show_register: bool = False
    selected_tag_filter: Optional[str] = None

    @property
    def is_logged_in(self) -> bool:
        return self.user_id is not None

    def restore(self, store: LocalCacheStore, prefers_dark: bool = False) -> None:
        """Load the persisted session and theme; an unreadable user id is dropped."""
        try:
            stored_user_id = store.get_item(USER_ID_KEY)
            saved_theme = store.get_item(THEME_KEY)
        except CacheError as exc:
            logger.warning("Session could not be restored: %s", exc)
            stored_user_id, saved_theme = None, None

        self.user_id = None
        if stored_user_id is not None:
            try:
                self.user_id = int(stored_user_id)
            except ValueError:
                logger.info("Discarding invalid stored user id %r", stored_user_id)
                store.remove_item(USER_ID_KEY)

        if saved_theme in THEMES:
            self.theme = saved_theme
        else:
            self.theme = "dark" if prefers_dark else "light"

    def sign_in(self, store: LocalCacheStore, user_id: int) -> None:
        self.user_id = user_id
        self.show_register = False
        self.selected_tag_filter = None
        store.set_item(USER_ID_KEY, str(user_id))

    def teardown(self, store: LocalCacheStore) -> None:
        """Forget the signed-in user, locally and in the session slot."""
        self.user_id = None
        self.selected_tag_filter = None
        try:
            store.remove_item(USER_ID_KEY)
        except CacheError as exc:
            logger.warning("Session slot could not be cleared: %s", exc)

    def toggle_theme(self, store: LocalCacheStore) -> str:
        self.theme = "dark" if self.theme == "light" else "light"
        store.set_item(THEME_KEY, self.theme)
        return self.theme
