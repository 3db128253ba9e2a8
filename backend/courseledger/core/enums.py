"""Closed value sets shared by models, services and schemas."""

from enum import Enum


class CourseCategory(str, Enum):
    """Taxonomy bucket every offer resolves to."""

    WEEKLY = "Weekly"
    HOLIDAY = "Holiday"
    INDIVIDUAL = "Individual"
    CLUB_PROGRAMS = "ClubPrograms"
    RENT_A_COACH = "RentACoach"
    UNKNOWN = "Unknown"


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    PENDING = "pending"  # online intake, never entered by this engine
    ACTIVE = "active"
    CANCELLED = "cancelled"
    STORNO = "storno"


class DocumentKind(str, Enum):
    """Billing document kinds, one document per kind per booking."""

    PARTICIPATION = "participation"
    CANCELLATION = "cancellation"
    STORNO = "storno"

    @property
    def label(self) -> str:
        return DOCUMENT_KIND_LABELS[self]


DOCUMENT_KIND_LABELS = {
    DocumentKind.PARTICIPATION: "Teilnahmebestätigung",
    DocumentKind.CANCELLATION: "Kündigungsbestätigung",
    DocumentKind.STORNO: "Storno-Rechnung",
}
