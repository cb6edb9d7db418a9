"""
Device-side client for the DeviceHub API.

Registers once, keeps the issued identity in an ``IdentityCache`` and
attaches it to every scoped request.
"""
import asyncio
from typing import Any, Dict, Optional

import httpx
import structlog

from devicehub.client.identity_cache import CachedIdentity, IdentityCache

logger = structlog.get_logger()

REGISTER_PATH = "/api/v1/devices/register"
HEALTH_PATH = "/api/v1/health"
BOOTSTRAP_ATTEMPTS = 3
BACKOFF_SECONDS = 2.0


class RegistrationFailed(Exception):
    """Registration did not succeed; ``detail`` carries diagnostics."""

    def __init__(self, message: str, detail: Optional[str] = None):
        self.detail = detail
        super().__init__(message)


def _describe(error: Exception, url: str) -> str:
    lines = [f"URL: {url}", f"Error type: {type(error).__name__}", f"Description: {error}"]
    if isinstance(error, httpx.HTTPStatusError):
        lines.append(f"HTTP status: {error.response.status_code}")
        lines.append(f"Response: {error.response.text[:500]}")
    return "\n".join(lines)


class DeviceClient:
    """
    Args:
        cache: Identity cache owned by this process
        name: Human-readable device name sent on registration
        hardware_id: Stable per-install hardware id, if the platform has one
        transport: Optional httpx transport (tests use ``httpx.MockTransport``)
    """

    def __init__(
        self,
        cache: IdentityCache,
        name: str,
        hardware_id: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
        backoff_seconds: float = BACKOFF_SECONDS,
    ):
        self.cache = cache
        self.name = name
        self.hardware_id = hardware_id
        self.transport = transport
        self.timeout = timeout
        self.backoff_seconds = backoff_seconds
        self.identity: Optional[CachedIdentity] = cache.load()

    @property
    def api_base(self) -> str:
        return self.cache.default_api_base

    @property
    def is_registered(self) -> bool:
        return self.identity is not None and self.identity.is_registered

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.api_base, transport=self.transport, timeout=self.timeout)

    async def _register(self, rotate: bool) -> CachedIdentity:
        body: Dict[str, Any] = {"name": self.name, "rotate_credential": rotate}
        if self.hardware_id:
            body["stable_hardware_id"] = self.hardware_id
        headers = {}
        # An id cached by an older client without a credential is offered for adoption.
        if self.identity is not None and not self.identity.is_registered:
            headers["X-Previous-Device-ID"] = self.identity.id

        async with self._client() as client:
            response = await client.post(REGISTER_PATH, json=body, headers=headers)
        response.raise_for_status()
        data = response.json()

        identity = CachedIdentity(
            id=data["id"],
            name=data["name"],
            credential=data["credential"],
            api_base=self.api_base,
        )
        self.cache.save(identity)
        self.identity = identity
        return identity

    async def bootstrap(self) -> CachedIdentity:
        """
        Register if no credential is cached; otherwise return the cached identity.

        Retries up to three times with linearly growing delays.

        Raises:
            RegistrationFailed: Every attempt failed
        """
        if self.is_registered:
            return self.identity

        last_error: Optional[Exception] = None
        for attempt in range(1, BOOTSTRAP_ATTEMPTS + 1):
            try:
                identity = await self._register(rotate=False)
                logger.info("device_bootstrapped", device_id=identity.id, attempt=attempt)
                return identity
            except (httpx.HTTPError, KeyError, ValueError) as e:
                last_error = e
                logger.warning("device_bootstrap_attempt_failed", attempt=attempt, error=str(e))
                if attempt < BOOTSTRAP_ATTEMPTS:
                    await asyncio.sleep(self.backoff_seconds * attempt)

        raise RegistrationFailed(
            f"Registration failed: {last_error}",
            detail=_describe(last_error, f"{self.api_base}{REGISTER_PATH}"),
        )

    async def check_health(self) -> bool:
        try:
            async with self._client() as client:
                response = await client.get(HEALTH_PATH)
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    async def reregister(self) -> CachedIdentity:
        """
        Rotate the credential while keeping the device id.

        The cached identity is left untouched when the server cannot be
        reached or the registration fails.

        Raises:
            RegistrationFailed: Server unreachable or registration rejected
        """
        if not await self.check_health():
            raise RegistrationFailed("Cannot reach server. Check your internet connection and try again.")
        try:
            identity = await self._register(rotate=True)
        except (httpx.HTTPError, KeyError, ValueError) as e:
            raise RegistrationFailed(
                f"Re-registration failed: {e}",
                detail=_describe(e, f"{self.api_base}{REGISTER_PATH}"),
            ) from e
        logger.info("device_reregistered", device_id=identity.id)
        return identity

    def auth_headers(self) -> Dict[str, str]:
        """Headers for scoped requests: the credential plus the device id."""
        if not self.is_registered:
            return {}
        return {
            "Authorization": f"Bearer {self.identity.credential}",
            "X-Device-ID": self.identity.id,
        }
