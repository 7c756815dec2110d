"""
Core interfaces for the Auth Session Client.

This module defines the abstract interfaces that components must implement
to ensure consistent behavior across the system.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from .models import SessionState, TransportResult, AuthResult


StateListener = Callable[[SessionState], None]


class ICredentialTransport(ABC):
    """Interface for exchanging credentials with the remote auth service."""

    @abstractmethod
    async def login(self, username: str, password: str) -> TransportResult:
        """Exchange username and password for an access/refresh token pair."""
        pass

    @abstractmethod
    async def register(self, username: str, email: str, password: str) -> TransportResult:
        """Create a new account."""
        pass


class IKeyValueStore(ABC):
    """Interface for durable storage of named string values."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Get a stored value, None if absent or unreadable."""
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store a value, overwriting any existing one."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a value. Absent keys are not an error."""
        pass


class ISessionManager(ABC):
    """Interface for the owner of the authentication state."""

    @property
    @abstractmethod
    def state(self) -> SessionState:
        """Current session state snapshot."""
        pass

    @abstractmethod
    async def bootstrap(self) -> SessionState:
        """Restore the session from durable storage."""
        pass

    @abstractmethod
    async def login(self, username: str, password: str) -> AuthResult:
        """Authenticate and persist the issued tokens."""
        pass

    @abstractmethod
    async def register(self, username: str, email: str, password: str) -> AuthResult:
        """Register a new account without authenticating."""
        pass

    @abstractmethod
    async def logout(self) -> None:
        """Clear stored tokens and the in-memory session."""
        pass

    @abstractmethod
    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener for state changes, returns an unsubscribe callable."""
        pass


class IConfigurationManager(ABC):
    """Interface for configuration management."""

    @abstractmethod
    def get_server_url(self) -> str:
        """Get the auth service base URL."""
        pass

    @abstractmethod
    def get_storage_backend(self) -> str:
        """Get the configured credential storage backend."""
        pass

    @abstractmethod
    def set_config(self, key: str, value: Any) -> None:
        """Set configuration value."""
        pass

    @abstractmethod
    def get_config(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        pass
