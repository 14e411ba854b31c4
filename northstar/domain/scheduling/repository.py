"""Scheduling repository - Database operations for hours, meetings and calendar integrations"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import BusinessHours, Meeting
from ...models_icloud import ICloudIntegration


class SchedulingRepository:
    """Repository for scheduling database operations"""

    # ------------------------------------------------------------------
    # Business hours
    # ------------------------------------------------------------------

    @staticmethod
    def list_business_hours(db: Session) -> list[BusinessHours]:
        return db.query(BusinessHours).order_by(BusinessHours.id).all()

    @staticmethod
    def get_business_hours(db: Session, day_of_week: str) -> Optional[BusinessHours]:
        return db.query(BusinessHours).filter(BusinessHours.day_of_week == day_of_week).first()

    @staticmethod
    def count_business_hours(db: Session) -> int:
        return db.query(BusinessHours).count()

    @staticmethod
    def upsert_business_hours(db: Session, day_of_week: str, **fields) -> BusinessHours:
        """Create or update the row for a weekday"""
        row = SchedulingRepository.get_business_hours(db, day_of_week)
        if row is None:
            row = BusinessHours(day_of_week=day_of_week)
            db.add(row)
        for key, value in fields.items():
            setattr(row, key, value)
        db.commit()
        db.refresh(row)
        return row

    @staticmethod
    def bulk_create_business_hours(db: Session, rows: list[dict]) -> list[BusinessHours]:
        created = [BusinessHours(**row) for row in rows]
        db.add_all(created)
        db.commit()
        return created

    # ------------------------------------------------------------------
    # Meetings
    # ------------------------------------------------------------------

    @staticmethod
    def list_meetings(
        db: Session,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        status: Optional[str] = None,
    ) -> list[Meeting]:
        """Meetings overlapping [start, end) when a range is given, ordered by start"""
        query = db.query(Meeting)
        if start is not None:
            query = query.filter(Meeting.end > start)
        if end is not None:
            query = query.filter(Meeting.start < end)
        if status is not None:
            query = query.filter(Meeting.status == status)
        return query.order_by(Meeting.start).all()

    @staticmethod
    def get_meeting(db: Session, meeting_id: int) -> Optional[Meeting]:
        return db.query(Meeting).filter(Meeting.id == meeting_id).first()

    @staticmethod
    def create_meeting(db: Session, **fields) -> Meeting:
        meeting = Meeting(**fields)
        db.add(meeting)
        db.commit()
        db.refresh(meeting)
        return meeting

    @staticmethod
    def update_meeting_status(db: Session, meeting: Meeting, status: str) -> Meeting:
        meeting.status = status
        db.commit()
        db.refresh(meeting)
        return meeting

    # ------------------------------------------------------------------
    # iCloud integrations
    # ------------------------------------------------------------------

    @staticmethod
    def get_icloud_integration(db: Session, user_id: int) -> Optional[ICloudIntegration]:
        return db.query(ICloudIntegration).filter(ICloudIntegration.user_id == user_id).first()

    @staticmethod
    def save_icloud_integration(db: Session, user_id: int, **fields) -> ICloudIntegration:
        integration = SchedulingRepository.get_icloud_integration(db, user_id)
        if integration is None:
            integration = ICloudIntegration(user_id=user_id)
            db.add(integration)
        for key, value in fields.items():
            setattr(integration, key, value)
        db.commit()
        db.refresh(integration)
        return integration

    @staticmethod
    def delete_icloud_integration(db: Session, integration: ICloudIntegration) -> None:
        db.delete(integration)
        db.commit()
