"""
Student model - represents a registered attendee.

A student is identified by a UUID that never changes. That UUID is the only
thing embedded in the student's QR token. Email is unique and stored
stripped and lower-cased so legacy tokens can be resolved by exact match.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, DateTime, String, Index
from sqlalchemy.orm import relationship
from checkin_portal.database import Base


class Student(Base):
    """
    SQLAlchemy model for the students table.

    checked_in_at is the global check-in marker: NULL until the first
    successful scan, then set once and never cleared by the check-in flow.
    """
    __tablename__ = "students"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Durable student identifier, the reference carried by the QR token")
    name = Column(Text, nullable=False,
                  doc="Student's full name")
    email = Column(Text, nullable=False, unique=True,
                   doc="Normalized email (stripped, lower-cased)")
    phone = Column(Text, nullable=True,
                   doc="Contact phone number")
    college = Column(Text, nullable=True,
                     doc="Primary affiliation")
    department = Column(Text, nullable=True,
                        doc="Secondary affiliation")
    qr_code = Column(Text, nullable=True,
                     doc="Rendered token as a data:image/png;base64 URL")
    checked_in_at = Column(DateTime(timezone=True), nullable=True,
                           doc="When the student was first checked in (NULL = not yet)")
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                        doc="Timestamp when the student registered")

    registrations = relationship("EventRegistration", back_populates="student",
                                 cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_students_checked_in_at", "checked_in_at"),
    )

    def __repr__(self):
        return f"<Student(id={self.id}, name='{self.name}', email='{self.email}')>"
