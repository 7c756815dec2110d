"""
Core data models for the Auth Session Client.

This module defines the session state snapshot shared with subscribers, the
credential pair persisted in durable storage, and the result shapes returned
by the credential transport and the session manager.
"""

from dataclasses import dataclass
from typing import Optional, Dict, Any
from enum import Enum


ACCESS_TOKEN_KEY = "accessToken"
REFRESH_TOKEN_KEY = "refreshToken"
CREDENTIAL_KEYS = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY)

NETWORK_ERROR_MESSAGE = "network error"


class SessionPhase(Enum):
    """Authentication lifecycle phase."""
    LOADING = "loading"
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class SessionState:
    """Immutable snapshot of the current authentication status."""
    is_authenticated: bool = False
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    is_loading: bool = True

    def __post_init__(self):
        has_tokens = bool(self.access_token) and bool(self.refresh_token)
        if self.is_authenticated != has_tokens:
            raise ValueError("is_authenticated must be true iff both tokens are present")

    @classmethod
    def loading(cls) -> 'SessionState':
        return cls()

    @classmethod
    def unauthenticated(cls) -> 'SessionState':
        return cls(is_loading=False)

    @classmethod
    def authenticated(cls, access_token: str, refresh_token: str) -> 'SessionState':
        return cls(
            is_authenticated=True,
            access_token=access_token,
            refresh_token=refresh_token,
            is_loading=False
        )

    @property
    def phase(self) -> SessionPhase:
        if self.is_loading:
            return SessionPhase.LOADING
        if self.is_authenticated:
            return SessionPhase.AUTHENTICATED
        return SessionPhase.UNAUTHENTICATED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the field names read by state subscribers."""
        return {
            'isAuthenticated': self.is_authenticated,
            'accessToken': self.access_token,
            'refreshToken': self.refresh_token,
            'isLoading': self.is_loading
        }


@dataclass(frozen=True)
class CredentialPair:
    """Access and refresh tokens that are always stored together."""
    access_token: str
    refresh_token: str

    def __post_init__(self):
        if not self.access_token or not self.refresh_token:
            raise ValueError("Both access and refresh tokens are required")

    @classmethod
    def from_payload(cls, payload: Optional[Dict[str, Any]]) -> Optional['CredentialPair']:
        """
        Extract the credential pair from a token endpoint response.

        Returns None unless both `access` and `refresh` are non-empty strings.
        """
        if not isinstance(payload, dict):
            return None

        access = payload.get('access')
        refresh = payload.get('refresh')
        if not isinstance(access, str) or not isinstance(refresh, str):
            return None
        if not access or not refresh:
            return None

        return cls(access_token=access, refresh_token=refresh)


@dataclass(frozen=True)
class TransportResult:
    """Outcome of a single credential transport call."""
    success: bool
    payload: Optional[Dict[str, Any]] = None

    @classmethod
    def ok(cls, payload: Optional[Dict[str, Any]]) -> 'TransportResult':
        return cls(success=True, payload=payload if payload is not None else {})

    @classmethod
    def failed(cls, payload: Optional[Dict[str, Any]] = None) -> 'TransportResult':
        return cls(success=False, payload=payload)

    @property
    def has_detail(self) -> bool:
        """True when the server explained a rejection."""
        return self.payload is not None


@dataclass
class AuthResult:
    """Result returned to callers of the session manager."""
    success: bool
    data: Optional[Any] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'success': self.success}
        # Rejections without a body still report data=None
        if self.data is not None or (not self.success and self.message is None):
            result['data'] = self.data
        if self.message is not None:
            result['message'] = self.message
        return result
