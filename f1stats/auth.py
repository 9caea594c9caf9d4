"""
Bearer token provider for the OpenF1 API.
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import aiohttp

from .errors import AuthenticationError


@dataclass
class AccessToken:
    """Bearer token with absolute expiry on the monotonic clock."""
    value: str
    expires_at: float

    def is_valid(self, now: float, margin: float = 10.0) -> bool:
        """True while the token has more than `margin` seconds left."""
        return now < self.expires_at - margin


class TokenProvider:
    """Lazily exchanges credentials for a bearer token and caches it."""

    DEFAULT_TOKEN_URL = "https://api.openf1.org/token"

    def __init__(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        api_key: Optional[str] = None,
        token_url: str = DEFAULT_TOKEN_URL,
        expiry_margin: float = 10.0,
        timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.username = username
        self.password = password
        self.api_key = api_key
        self.token_url = token_url
        self.expiry_margin = expiry_margin
        self.timeout = timeout
        self._clock = clock
        self._token: Optional[AccessToken] = None
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)

    @property
    def cached_token(self) -> Optional[AccessToken]:
        return self._token

    async def get_token(self) -> Optional[str]:
        """
        Get a valid token value.

        Returns:
            The bearer token, the static API key when no credentials are
            configured, or None when neither is available.
        """
        if not self.has_credentials:
            return self.api_key or None

        if self._token is None or not self._token.is_valid(self._clock(), self.expiry_margin):
            self._token = await self._fetch_token()
        return self._token.value

    async def get_auth_header(self) -> Dict[str, str]:
        """Authorization header for the next request, empty if unauthenticated."""
        token = await self.get_token()
        if not token:
            return {}
        return {"Authorization": f"Bearer {token}"}

    def invalidate(self) -> None:
        """Forget the cached token so the next request re-authenticates."""
        if self._token is not None:
            print("[Auth] Discarding cached token")
        self._token = None

    async def _fetch_token(self) -> AccessToken:
        """Exchange username/password for a token."""
        print(f"[Auth] Requesting token from {self.token_url}")
        try:
            payload = await self._request_token()
        except aiohttp.ClientError as e:
            raise AuthenticationError(f"Token request failed: {e}") from e

        try:
            value = payload["access_token"]
            expires_in = float(payload.get("expires_in", 3600))
        except (KeyError, TypeError, ValueError) as e:
            raise AuthenticationError(f"Malformed token response: {payload!r}") from e

        return AccessToken(value=value, expires_at=self._clock() + expires_in)

    async def _request_token(self) -> dict:
        """POST the form-encoded credentials to the token endpoint."""
        session = await self._ensure_session()
        form = {"username": self.username, "password": self.password}
        async with session.post(self.token_url, data=form) as resp:
            if resp.status != 200:
                text = await resp.text()
                raise AuthenticationError(
                    f"Token endpoint returned {resp.status}: {text[:200]}"
                )
            return await resp.json()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure aiohttp session exists."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
