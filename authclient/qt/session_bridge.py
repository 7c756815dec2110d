"""
Qt bridge for session state.

Exposes SessionManager state changes as Qt signals for UI components.
"""

import logging
from typing import Optional

from PyQt6.QtCore import QObject, pyqtSignal

from authshared.interfaces import ISessionManager
from authshared.models import SessionState

logger = logging.getLogger(__name__)


class SessionStateBridge(QObject):
    """
    Forwards session state snapshots to Qt signal consumers.

    ``state_changed`` fires on every snapshot; ``authentication_changed`` and
    ``loading_changed`` fire only when the corresponding flag flips.
    """

    state_changed = pyqtSignal(object)
    authentication_changed = pyqtSignal(bool)
    loading_changed = pyqtSignal(bool)

    def __init__(self, session_manager: ISessionManager, parent: Optional[QObject] = None):
        super().__init__(parent)
        self._session_manager = session_manager
        self._last_state = session_manager.state
        self._unsubscribe = session_manager.subscribe(self._on_state_changed)

    @property
    def current_state(self) -> SessionState:
        return self._last_state

    def _on_state_changed(self, state: SessionState) -> None:
        previous = self._last_state
        self._last_state = state

        self.state_changed.emit(state)

        if state.is_loading != previous.is_loading:
            self.loading_changed.emit(state.is_loading)
        if state.is_authenticated != previous.is_authenticated:
            logger.debug(f"Authentication changed: {state.is_authenticated}")
            self.authentication_changed.emit(state.is_authenticated)

    def detach(self) -> None:
        """Stop receiving session updates."""
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
