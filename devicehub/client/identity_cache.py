"""
On-disk cache of a device's server-issued identity.

The primary copy is the only authority. A legacy copy (written by older
client versions, possibly with no credential) is read once, migrated into
the primary copy and then removed.
"""
import json
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
import structlog

logger = structlog.get_logger()

PathLike = Union[str, Path]


class CachedIdentity(BaseModel):
    """Identity a device holds between runs."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str = ""
    credential: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("credential", "token", "mcp_token"),
    )
    api_base: str = Field(validation_alias=AliasChoices("api_base", "apiBaseURL", "api_base_url"))

    @property
    def is_registered(self) -> bool:
        return bool(self.credential)


def _read(path: Path) -> Optional[CachedIdentity]:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    try:
        return CachedIdentity.model_validate(json.loads(raw))
    except (ValueError, PydanticValidationError) as e:
        logger.warning("identity_cache_unreadable", path=str(path), error=str(e))
        return None


class ReadOnlyIdentityCache:
    """
    View of the primary copy for secondary processes (extensions, helpers).

    Never writes and never migrates.
    """

    def __init__(self, primary_path: PathLike):
        self.primary_path = Path(primary_path)

    def load(self) -> Optional[CachedIdentity]:
        return _read(self.primary_path)


class IdentityCache:
    """
    Read/write cache owned by the main client process.

    Args:
        primary_path: Authoritative copy
        legacy_path: Copy written by older clients, migrated on first load
        default_api_base: Current API base; stale cached values are rewritten to it
    """

    def __init__(
        self,
        primary_path: PathLike,
        legacy_path: Optional[PathLike] = None,
        default_api_base: str = "http://localhost:8000",
    ):
        self.primary_path = Path(primary_path)
        self.legacy_path = Path(legacy_path) if legacy_path else None
        self.default_api_base = default_api_base.rstrip("/")

    def load(self) -> Optional[CachedIdentity]:
        """
        Load the cached identity.

        Reads the primary copy, falling back to the legacy copy. A legacy hit
        is saved to the primary copy, and the legacy file is deleted only once
        that save succeeds. A stale ``api_base`` is rewritten in place.
        """
        identity = _read(self.primary_path)
        migrated = False
        if identity is None and self.legacy_path is not None:
            identity = _read(self.legacy_path)
            migrated = identity is not None

        if identity is None:
            return None

        stale = identity.api_base.rstrip("/") != self.default_api_base
        if stale:
            logger.info("identity_api_base_rewritten", old=identity.api_base, new=self.default_api_base)
            identity = identity.model_copy(update={"api_base": self.default_api_base})

        if migrated or stale:
            self.save(identity)
        if migrated:
            self.legacy_path.unlink(missing_ok=True)
            logger.info("identity_migrated_from_legacy", device_id=identity.id)

        return identity

    def save(self, identity: CachedIdentity) -> None:
        """Write the primary copy atomically (temp file, then rename)."""
        self.primary_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.primary_path.parent,
            prefix=f".{self.primary_path.name}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                tmp.write(identity.model_dump_json())
                tmp.flush()
                os.fsync(tmp.fileno())
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.primary_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def clear(self) -> None:
        self.primary_path.unlink(missing_ok=True)
        if self.legacy_path is not None:
            self.legacy_path.unlink(missing_ok=True)
