"""
HTTP API Client for the Auth Session Client.

This module provides the credential transport used by the session manager to
exchange credentials with the remote auth service. Every failure is reported
through the returned TransportResult; nothing is raised to the caller.
"""

import asyncio
import logging
from typing import Optional, Dict, Any, Tuple
from urllib.parse import urljoin

import aiohttp
from aiohttp import ClientSession, ClientTimeout, ClientError

from authshared.exceptions import NetworkError, ErrorCode
from authshared.interfaces import ICredentialTransport
from authshared.logging_config import log_structured_error
from authshared.models import TransportResult

logger = logging.getLogger(__name__)


class AuthAPIClient(ICredentialTransport):
    """
    HTTP client for the remote auth service.

    Issues a single request per call with no retries. Transport faults
    (connection failures, timeouts, bodies that are not JSON) yield
    ``TransportResult.failed(None)``; non-2xx responses with a JSON body
    yield ``TransportResult.failed(body)``.
    """

    LOGIN_PATH = '/auth/token/'
    REGISTER_PATH = '/auth/users/'

    def __init__(self, server_url: str, timeout: float = 30.0):
        self.server_url = server_url.rstrip('/')
        self.timeout = ClientTimeout(total=timeout)
        self._session: Optional[ClientSession] = None

        logger.info(f"API client initialized for server: {self.server_url}")

    async def __aenter__(self):
        """Async context manager entry."""
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def _ensure_session(self) -> None:
        """Ensure HTTP session is available."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=10,
                keepalive_timeout=30,
            )
            self._session = ClientSession(
                connector=connector,
                timeout=self.timeout,
                headers={
                    'User-Agent': 'AuthSessionClient/1.0',
                    'Accept': 'application/json'
                }
            )

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _build_url(self, path: str) -> str:
        return urljoin(self.server_url + '/', path.lstrip('/'))

    async def _post(self, path: str, data: Dict[str, Any]) -> Tuple[int, Optional[Any]]:
        """
        POST a JSON body and decode the JSON response.

        Args:
            path: API path relative to the server URL
            data: Request body

        Returns:
            Tuple of HTTP status and decoded body (None for an empty body)

        Raises:
            NetworkError: On connection failure, timeout or a non-JSON body
        """
        await self._ensure_session()
        url = self._build_url(path)

        try:
            logger.debug(f"Making POST request to {url}")

            async with self._session.post(url, json=data) as response:
                try:
                    body = await response.json(content_type=None)
                except ValueError as e:
                    raise NetworkError(
                        f"Invalid JSON response from {url} ({response.status})",
                        ErrorCode.NETWORK_INVALID_RESPONSE,
                        context={'url': url, 'status': response.status},
                        cause=e
                    )

                return response.status, body

        except asyncio.TimeoutError as e:
            raise NetworkError(
                f"Request to {url} timed out",
                ErrorCode.NETWORK_TIMEOUT,
                context={'url': url},
                cause=e
            )
        except (ClientError, OSError) as e:
            raise NetworkError(
                f"Request to {url} failed: {e}",
                ErrorCode.NETWORK_CONNECTION_FAILED,
                context={'url': url},
                cause=e
            )

    async def _exchange(self, operation: str, path: str, data: Dict[str, Any]) -> TransportResult:
        try:
            status, body = await self._post(path, data)
        except NetworkError as e:
            log_structured_error(logger, e, level=logging.WARNING)
            return TransportResult.failed()
        except Exception as e:
            logger.error(f"Unexpected error during {operation}: {e}")
            return TransportResult.failed()

        if 200 <= status < 300:
            logger.debug(f"{operation} request succeeded ({status})")
            return TransportResult.ok(body)

        logger.info(f"{operation} request rejected by server ({status})")
        return TransportResult.failed(body)

    async def login(self, username: str, password: str) -> TransportResult:
        """
        Exchange credentials for an access/refresh token pair.

        Args:
            username: Account username
            password: Account password

        Returns:
            TransportResult carrying the token payload or the rejection body
        """
        return await self._exchange(
            'login',
            self.LOGIN_PATH,
            {'username': username, 'password': password}
        )

    async def register(self, username: str, email: str, password: str) -> TransportResult:
        """
        Create an account on the auth service.

        Args:
            username: Desired username
            email: Account email address
            password: Account password

        Returns:
            TransportResult carrying the created account or the rejection body
        """
        return await self._exchange(
            'register',
            self.REGISTER_PATH,
            {'username': username, 'email': email, 'password': password}
        )
