from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    company = Column(String(255), nullable=True)
    role = Column(String(20), default="client", nullable=False)  # client, admin

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    icloud_integration = relationship("ICloudIntegration", back_populates="user", uselist=False)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class Meeting(Base):
    """Internal booking; only status == "scheduled" blocks availability"""

    __tablename__ = "meetings"

    id = Column(Integer, primary_key=True, index=True)
    consultation_id = Column(String(100), index=True, nullable=False)
    client_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    start = Column(DateTime, nullable=False, index=True)  # UTC
    end = Column(DateTime, nullable=False)  # UTC
    provider = Column(String(50), nullable=True)  # zoom, google_meet, in_person
    join_url = Column(String(500), nullable=True)
    status = Column(String(20), default="scheduled", nullable=False)  # scheduled, cancelled, completed

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class BusinessHours(Base):
    __tablename__ = "business_hours"

    id = Column(Integer, primary_key=True, index=True)
    day_of_week = Column(String(10), unique=True, nullable=False)  # monday .. sunday
    open_time = Column(String(20), nullable=False, default="")  # e.g. "9am"
    close_time = Column(String(20), nullable=False, default="")  # e.g. "5pm"
    is_closed = Column(Boolean, default=False, nullable=False)
    display_format = Column(String(50), nullable=False)  # e.g. "9am - 5pm"
    start_minutes = Column(Integer, nullable=False, default=0)  # minutes from midnight
    end_minutes = Column(Integer, nullable=False, default=0)

    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
