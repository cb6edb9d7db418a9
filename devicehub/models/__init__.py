"""
Database Models Package

This package contains all SQLAlchemy ORM models.
"""

from devicehub.database import Base

# Import all models here for Alembic to detect them
from devicehub.models.user import User
from devicehub.models.device import Device
from devicehub.models.capture import Capture, SensorType

__all__ = ["Base", "User", "Device", "Capture", "SensorType"]
