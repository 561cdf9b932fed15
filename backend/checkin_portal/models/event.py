"""
Event model - an occasion students register for and check in to.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, DateTime, String
from sqlalchemy.orm import relationship
from checkin_portal.database import Base


class Event(Base):
    """SQLAlchemy model for the events table."""
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique event identifier")
    name = Column(Text, nullable=False,
                  doc="Event title")
    date = Column(DateTime(timezone=True), nullable=True,
                  doc="When the event takes place")
    location = Column(Text, nullable=True,
                      doc="Venue")
    description = Column(Text, nullable=True,
                         doc="Free-form description shown on the registration page")
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                        doc="Timestamp when the event was created")

    registrations = relationship("EventRegistration", back_populates="event",
                                 cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Event(id={self.id}, name='{self.name}')>"
