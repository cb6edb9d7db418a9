"""
User model for people who sign in and claim devices.
"""
from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import relationship

from ..core.credentials import generate_id
from ..core.clock import utcnow
from ..database import Base


class User(Base):
    """
    User model representing a person authenticated by an external identity provider.

    Attributes:
        id: Opaque string primary key
        identity_subject: Subject claim from the external identity provider (unique)
        email: Email reported by the identity provider, if any
        display_name: Name shown in clients
        created_at: Timestamp of first sign-in
        updated_at: Timestamp of last profile change
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_id)
    identity_subject = Column(String(255), unique=True, index=True, nullable=False)
    email = Column(String(255), nullable=True)
    display_name = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    devices = relationship("Device", back_populates="owner")

    def __repr__(self):
        return f"<User(id={self.id}, subject={self.identity_subject})>"
