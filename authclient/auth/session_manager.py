"""
Session Manager for the Auth Session Client.

This module owns the in-memory authentication state. It exchanges credentials
through the credential transport, keeps the access/refresh token pair in the
key-value store, and pushes every state change to registered listeners.
"""

import logging
from typing import Callable, List, Optional

from authshared.exceptions import AuthenticationError, ErrorCode, handle_exception
from authshared.interfaces import (
    ICredentialTransport, IKeyValueStore, ISessionManager, StateListener
)
from authshared.logging_config import AuditLogger, log_structured_error
from authshared.models import (
    ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, CREDENTIAL_KEYS, NETWORK_ERROR_MESSAGE,
    AuthResult, CredentialPair, SessionPhase, SessionState, TransportResult
)

logger = logging.getLogger(__name__)


def _rejection_code(response: TransportResult, rejected_code: ErrorCode) -> ErrorCode:
    """Code for a failed call: a server rejection, or a transport fault without a body."""
    return rejected_code if response.has_detail else ErrorCode.NETWORK_CONNECTION_FAILED


class SessionManager(ISessionManager):
    """
    Single owner of the authentication state.

    The state starts in the loading phase and leaves it on the first
    ``bootstrap()``. ``login()`` and ``logout()`` move between the
    authenticated and unauthenticated phases. Listeners are called
    synchronously with the new snapshot before the mutating call returns.

    Transport and storage faults never propagate out of this class; they
    become failed ``AuthResult`` values or a safe transition to the
    unauthenticated phase.
    """

    def __init__(
        self,
        transport: ICredentialTransport,
        store: IKeyValueStore,
        audit_logger: Optional[AuditLogger] = None
    ):
        self.transport = transport
        self.store = store
        self.audit = audit_logger or AuditLogger()

        self._state = SessionState.loading()
        self._listeners: List[StateListener] = []

        logger.info("Session manager initialized")

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def phase(self) -> SessionPhase:
        return self._state.phase

    @property
    def is_authenticated(self) -> bool:
        return self._state.is_authenticated

    @property
    def access_token(self) -> Optional[str]:
        return self._state.access_token

    @property
    def refresh_token(self) -> Optional[str]:
        return self._state.refresh_token

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Add listener for session state changes.

        Args:
            listener: Function called with the new SessionState

        Returns:
            Callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, new_state: SessionState) -> None:
        """Replace the state and notify listeners if it changed."""
        if new_state == self._state:
            return

        previous = self._state
        self._state = new_state
        logger.debug(f"Session phase changed: {previous.phase.value} -> {new_state.phase.value}")

        for listener in list(self._listeners):
            try:
                listener(new_state)
            except Exception as e:
                logger.error(f"Error in session state listener: {e}")

    async def bootstrap(self) -> SessionState:
        """
        Restore the session from the key-value store.

        Both tokens must be present and non-empty for the session to be
        authenticated. The loading phase ends here whatever the store does.

        Returns:
            The resulting session state
        """
        new_state = SessionState.unauthenticated()

        try:
            access_token = await self.store.get(ACCESS_TOKEN_KEY)
            refresh_token = await self.store.get(REFRESH_TOKEN_KEY)

            if access_token and refresh_token:
                new_state = SessionState.authenticated(access_token, refresh_token)
            elif access_token or refresh_token:
                logger.warning("Ignoring incomplete stored credentials")
            else:
                logger.info("No stored credentials found")

        except Exception as e:
            logger.warning(f"Failed to restore session from storage: {e}")
        finally:
            self._set_state(new_state)

        self.audit.log_session_restore(new_state.is_authenticated)
        return self._state

    async def _persist_credentials(self, credentials: CredentialPair) -> None:
        """
        Write both tokens, undoing a partial write on failure.

        On failure the previously stored pair is put back when the session is
        authenticated, otherwise both keys are removed.
        """
        try:
            await self.store.set(ACCESS_TOKEN_KEY, credentials.access_token)
            await self.store.set(REFRESH_TOKEN_KEY, credentials.refresh_token)
        except Exception:
            if self._state.is_authenticated:
                await self._restore_stored_credentials(
                    CredentialPair(self._state.access_token, self._state.refresh_token)
                )
            else:
                await self._clear_stored_credentials()
            raise

    async def _restore_stored_credentials(self, credentials: CredentialPair) -> None:
        try:
            await self.store.set(ACCESS_TOKEN_KEY, credentials.access_token)
            await self.store.set(REFRESH_TOKEN_KEY, credentials.refresh_token)
        except Exception as e:
            logger.error(f"Failed to restore previous credentials: {e}")
            await self._clear_stored_credentials()

    async def _clear_stored_credentials(self) -> None:
        for key in CREDENTIAL_KEYS:
            try:
                await self.store.delete(key)
            except Exception as e:
                logger.warning(f"Failed to delete stored '{key}': {e}")

    async def login(self, username: str, password: str) -> AuthResult:
        """
        Authenticate with the auth service and persist the issued tokens.

        Args:
            username: Account username
            password: Account password

        Returns:
            AuthResult with success=True, or the rejection body in ``data``,
            or ``message="network error"`` when the call itself failed
        """
        try:
            response = await self.transport.login(username, password)

            if not response.success:
                self.audit.log_authentication(
                    username,
                    success=False,
                    failure_reason=_rejection_code(response, ErrorCode.AUTH_INVALID_CREDENTIALS).value
                )
                return AuthResult(success=False, data=response.payload)

            credentials = CredentialPair.from_payload(response.payload)
            if credentials is None:
                error = AuthenticationError(
                    "Token response is missing the access or refresh token",
                    ErrorCode.AUTH_INCOMPLETE_CREDENTIALS,
                    context={'operation': 'login'}
                )
                log_structured_error(logger, error, level=logging.WARNING)
                self.audit.log_authentication(username, success=False, failure_reason=error.error_code.value)
                return AuthResult(success=False, data=response.payload)

            await self._persist_credentials(credentials)

        except Exception as e:
            error = handle_exception(e, context={'operation': 'login'})
            log_structured_error(logger, error)
            self.audit.log_authentication(username, success=False, failure_reason=error.error_code.value)
            return AuthResult(success=False, message=NETWORK_ERROR_MESSAGE)

        self._set_state(SessionState.authenticated(credentials.access_token, credentials.refresh_token))
        self.audit.log_authentication(username, success=True)
        logger.info("Login successful")
        return AuthResult(success=True)

    async def register(self, username: str, email: str, password: str) -> AuthResult:
        """
        Create an account. Registration never authenticates the session.

        Args:
            username: Desired username
            email: Account email address
            password: Account password

        Returns:
            AuthResult with success=True, or the rejection body in ``data``,
            or ``message="network error"`` when the call itself failed
        """
        try:
            response = await self.transport.register(username, email, password)
        except Exception as e:
            error = handle_exception(e, context={'operation': 'register'})
            log_structured_error(logger, error)
            self.audit.log_registration(username, success=False, failure_reason=error.error_code.value)
            return AuthResult(success=False, message=NETWORK_ERROR_MESSAGE)

        if not response.success:
            self.audit.log_registration(
                username,
                success=False,
                failure_reason=_rejection_code(response, ErrorCode.AUTH_REGISTRATION_FAILED).value
            )
            return AuthResult(success=False, data=response.payload)

        self.audit.log_registration(username, success=True)
        return AuthResult(success=True)

    async def logout(self) -> None:
        """
        Clear stored tokens and end the session.

        Safe to call when already logged out.
        """
        was_authenticated = self._state.is_authenticated
        logger.info("Logging out and clearing authentication state")

        try:
            await self._clear_stored_credentials()
        finally:
            self._set_state(SessionState.unauthenticated())

        self.audit.log_logout(was_authenticated)
