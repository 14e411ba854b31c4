"""
iCloud Calendar Integration Models
"""
from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class ICloudIntegration(Base):
    """Stored iCloud session for a user; created on connect, deleted on disconnect"""

    __tablename__ = "icloud_integrations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)

    # Credentials (app-specific password, encrypted when ICLOUD_ENCRYPTION_KEY is set)
    apple_id = Column(String(255), nullable=False)
    app_password = Column(Text, nullable=False)

    # Calendars
    calendar_href = Column(String(500), nullable=True)  # Default calendar collection URL
    busy_calendar_urls = Column(JSON, default=list)  # Calendars whose events block availability

    connected_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationship
    user = relationship("User", back_populates="icloud_integration")
