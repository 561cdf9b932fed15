from checkin_portal.models.student import Student
from checkin_portal.models.event import Event
from checkin_portal.models.event_registration import EventRegistration

__all__ = ["Student", "Event", "EventRegistration"]
