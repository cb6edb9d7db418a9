"""
Device credential issuance and rotation.

A credential is an opaque random bearer secret bound to exactly one device
row. Rotation overwrites it, so the previous value stops authorizing at once.
"""
import secrets
import uuid

import structlog

from devicehub.config import settings

logger = structlog.get_logger()


def generate_id() -> str:
    """Generate an opaque primary key for a device or user row."""
    return str(uuid.uuid4())


def generate_credential() -> str:
    """
    Generate a new device credential.

    The token comes from the OS CSPRNG and is not derived from any
    user-visible data.

    Returns:
        Hex encoded token (2 characters per random byte)
    """
    return secrets.token_hex(settings.CREDENTIAL_BYTES)


def rotate_credential(device) -> str:
    """
    Replace a device's credential with a fresh one.

    Args:
        device: Device ORM instance (changes are persisted on commit)

    Returns:
        The new credential
    """
    device.credential = generate_credential()
    logger.info("credential_rotated", device_id=device.id)
    return device.credential