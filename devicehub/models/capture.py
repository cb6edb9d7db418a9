"""
Capture model for sensor readings submitted by devices.
"""
import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, Index
from sqlalchemy.orm import relationship

from ..core.clock import utcnow
from ..database import Base


class SensorType(str, enum.Enum):
    BARCODE = "barcode"
    CAMERA = "camera"
    LIDAR = "lidar"
    MOTION = "motion"
    BEACON = "beacon"


class Capture(Base):
    """
    A single sensor capture owned by one device.

    Attributes:
        id: Integer primary key
        device_id: Owning device
        sensor_type: One of SensorType values
        data: JSON payload as submitted
        captured_at: Server receive timestamp
    """
    __tablename__ = "captures"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(String(36), ForeignKey("devices.id"), nullable=False, index=True)
    sensor_type = Column(String(20), nullable=False)
    data = Column(JSON, nullable=False)
    captured_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    device = relationship("Device", back_populates="captures")

    __table_args__ = (
        Index("ix_captures_device_captured_at", "device_id", "captured_at"),
    )

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "device_id": self.device_id,
            "sensor_type": self.sensor_type,
            "captured_at": self.captured_at.isoformat(),
        }

    def to_dict(self) -> dict:
        summary = self.to_summary()
        summary["data"] = self.data
        return summary

    def __repr__(self):
        return f"<Capture(id={self.id}, device_id={self.device_id}, sensor_type={self.sensor_type})>"
