"""
Device-side client: identity cache and registration bootstrap.
"""
from devicehub.client.identity_cache import CachedIdentity, IdentityCache, ReadOnlyIdentityCache
from devicehub.client.device_client import DeviceClient, RegistrationFailed

__all__ = [
    "CachedIdentity",
    "IdentityCache",
    "ReadOnlyIdentityCache",
    "DeviceClient",
    "RegistrationFailed",
]
