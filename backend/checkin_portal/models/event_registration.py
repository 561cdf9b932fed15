"""
EventRegistration model - joins a student to an event.

Carries its own check-in marker so attendance can be tracked per event.
A student can register for a given event only once.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import relationship
from checkin_portal.database import Base


class EventRegistration(Base):
    """
    SQLAlchemy model for the event_registrations table.

    checked_in_at follows the same one-way rule as Student.checked_in_at,
    scoped to the (student, event) pair.
    """
    __tablename__ = "event_registrations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique registration identifier")
    student_id = Column(String(36), ForeignKey("students.id", ondelete="CASCADE"), nullable=False,
                        doc="Registered student")
    event_id = Column(String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False,
                      doc="Event registered for")
    registered_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           doc="When the registration was made")
    checked_in_at = Column(DateTime(timezone=True), nullable=True,
                           doc="When the student was checked in to this event (NULL = not yet)")

    student = relationship("Student", back_populates="registrations")
    event = relationship("Event", back_populates="registrations")

    __table_args__ = (
        UniqueConstraint("student_id", "event_id", name="uq_event_registrations_student_event"),
        Index("ix_event_registrations_event_id", "event_id"),
    )

    def __repr__(self):
        return f"<EventRegistration(student={self.student_id}, event={self.event_id}, checked_in_at={self.checked_in_at})>"
