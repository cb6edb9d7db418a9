"""
Device model: one row per physical client device.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from ..core.clock import utcnow
from ..core.credentials import generate_credential, generate_id
from ..database import Base


class Device(Base):
    """
    Registry row for a physical device.

    The stable hardware id is client-provided and unique when present
    (NULLs never collide). The credential is a server-issued bearer secret,
    unique across all rows, and overwritten on rotation.

    Attributes:
        id: Server-generated opaque primary key
        name: Display name reported by the device
        stable_hardware_id: Identifier that survives client reinstalls
        credential: Bearer secret bound to this row
        owner_user_id: Owning user, pinned once set
        push_token: Push delivery address saved by the device
        registered_at: Timestamp of row creation
        last_seen_at: Debounced liveness timestamp for scoped calls
        last_bridge_call_at: Debounced liveness timestamp for bridge calls
    """
    __tablename__ = "devices"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(100), nullable=False)
    stable_hardware_id = Column(String(64), unique=True, nullable=True, index=True)
    credential = Column(String(128), unique=True, nullable=False, index=True, default=generate_credential)
    owner_user_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    push_token = Column(String(256), nullable=True)
    registered_at = Column(DateTime, default=utcnow, nullable=False)
    last_seen_at = Column(DateTime, nullable=True)
    last_bridge_call_at = Column(DateTime, nullable=True)

    # Relationships
    owner = relationship("User", back_populates="devices")
    captures = relationship("Capture", back_populates="device")

    def __repr__(self):
        return f"<Device(id={self.id}, name={self.name})>"
