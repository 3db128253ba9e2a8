# backend/courseledger/services/offer_taxonomy.py
"""
Offer taxonomy classification.

Single source of truth for "which bucket is this offer in", "is it billed
as a weekly subscription" and "may a booking of it be cancelled". Every
caller (booking creation, cancellation, listing filters) goes through the
functions below so the answers cannot drift apart.

Matching works on folded text: lower-case, German umlauts spelled out
(``Förder`` == ``Foerder``) and ``-``/``_``/``/`` treated as spaces, so
``Rent-a-Coach`` and ``rent a coach`` are the same phrase.
"""

from dataclasses import dataclass
import logging
import re
from typing import Any, Optional

from ..core.enums import CourseCategory
from ..core.exceptions import ValidationException

logger = logging.getLogger(__name__)

_UMLAUTS = str.maketrans({"ä": "ae", "ö": "oe", "ü": "ue", "ß": "ss"})
_SEPARATORS = re.compile(r"[\s_\-/]+")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")

# Category spellings seen in stored records -> bucket
CATEGORY_ALIASES = {
    "weekly": CourseCategory.WEEKLY,
    "weeklycourses": CourseCategory.WEEKLY,
    "holiday": CourseCategory.HOLIDAY,
    "holidayprograms": CourseCategory.HOLIDAY,
    "individual": CourseCategory.INDIVIDUAL,
    "individualcourses": CourseCategory.INDIVIDUAL,
    "clubprograms": CourseCategory.CLUB_PROGRAMS,
    "clubprogram": CourseCategory.CLUB_PROGRAMS,
    "rentacoach": CourseCategory.RENT_A_COACH,
}

RENT_A_COACH_MARKERS = frozenset({"rentacoach", "rentacoachgeneric", "rentatrainer"})
COACH_EDUCATION_MARKERS = frozenset({"coacheducation"})
RENT_A_COACH_PHRASE = re.compile(r"\brent a (coach|trainer)\b")
COACH_EDUCATION_PHRASE = "coach education"

# Legacy ``type`` values for records without a category
TYPE_FALLBACK = {
    "foerdertraining": CourseCategory.WEEKLY,
    "kindergarten": CourseCategory.WEEKLY,
    "camp": CourseCategory.HOLIDAY,
}

# Sub-type / title keywords that rule out weekly billing and cancellation.
# They only ever exclude; none of them promotes an offer to Weekly.
NON_WEEKLY_KEYWORDS = (
    "rent a coach",
    "rent a trainer",
    "rentacoach",
    "rentatrainer",
    "coach education",
    "training camp",
    "camp",
    "feriencamp",
    "holiday camp",
    "powertraining",
    "power training",
    "personal training",
    "personaltraining",
    "1:1",
    "individual",
    "athletik",
    "torwart",
)

NON_CANCELLABLE_SUB_TYPES = frozenset({"powertraining"})
NON_CANCELLABLE_TYPES = frozenset({"camp", "personaltraining"})
CANCELLABLE_TYPES = frozenset({"foerdertraining", "kindergarten"})


@dataclass(frozen=True)
class OfferClassification:
    category: CourseCategory
    is_coach_education: bool
    is_rent_a_coach: bool
    is_weekly_recurring: bool
    is_cancellable: bool


def fold_text(value: Optional[str]) -> str:
    """Lower-case, spell out umlauts, collapse separators to single spaces."""
    if not value:
        return ""
    folded = str(value).lower().translate(_UMLAUTS)
    return _SEPARATORS.sub(" ", folded).strip()


def compact_key(value: Optional[str]) -> str:
    """Folded text reduced to ``[a-z0-9]`` (``RentACoach_Generic`` -> ``rentacoachgeneric``)."""
    return _NON_ALNUM.sub("", fold_text(value))


def normalize_category(value: Optional[str]) -> Optional[CourseCategory]:
    """Map a stored category label onto the closed set; None when absent or unknown."""
    key = compact_key(value)
    if not key:
        return None
    return CATEGORY_ALIASES.get(key)


def _field(offer: Any, name: str) -> Optional[str]:
    if isinstance(offer, dict):
        value = offer.get(name)
        if value is None and name == "sub_type":
            value = offer.get("subType")
    else:
        value = getattr(offer, name, None)
    return str(value) if value is not None else None


def _require(offer: Any) -> None:
    if offer is None:
        raise ValidationException("An offer is required for classification", field="offer")


def _is_rent_a_coach(offer: Any) -> bool:
    sub_type = compact_key(_field(offer, "sub_type"))
    offer_type = compact_key(_field(offer, "type"))
    if sub_type in RENT_A_COACH_MARKERS or offer_type.startswith("rentacoach"):
        return True
    if normalize_category(_field(offer, "category")) is CourseCategory.RENT_A_COACH:
        return True
    return bool(RENT_A_COACH_PHRASE.search(fold_text(_field(offer, "title"))))


def _is_coach_education(offer: Any) -> bool:
    sub_type = compact_key(_field(offer, "sub_type"))
    offer_type = compact_key(_field(offer, "type"))
    raw_category = compact_key(_field(offer, "category"))
    if sub_type in COACH_EDUCATION_MARKERS or offer_type.startswith("coacheducation"):
        return True
    if raw_category == "coacheducation":
        return True
    return (
        normalize_category(_field(offer, "category")) is CourseCategory.CLUB_PROGRAMS
        and COACH_EDUCATION_PHRASE in fold_text(_field(offer, "title"))
    )


def _has_exclusion_keyword(offer: Any) -> bool:
    for name in ("sub_type", "title"):
        text = fold_text(_field(offer, name))
        if text and any(keyword in text for keyword in NON_WEEKLY_KEYWORDS):
            return True
    return False


def classify(offer: Any) -> CourseCategory:
    """
    Resolve the offer's course category. First match wins:

    1. Rent-a-Coach by sub-type, type prefix, category or title phrase
       (beats a generic ClubPrograms tag).
    2. Coach Education -> ClubPrograms.
    3. A known ``category`` label.
    4. Legacy ``type`` fallback (Foerdertraining/Kindergarten -> Weekly,
       Camp -> Holiday), then ``ClubProgram*`` type prefixes.
    5. Unknown.
    """
    _require(offer)
    if _is_rent_a_coach(offer):
        return CourseCategory.RENT_A_COACH
    if _is_coach_education(offer):
        return CourseCategory.CLUB_PROGRAMS

    category = normalize_category(_field(offer, "category"))
    if category is not None:
        return category

    offer_type = compact_key(_field(offer, "type"))
    if offer_type in TYPE_FALLBACK:
        return TYPE_FALLBACK[offer_type]
    if offer_type.startswith("clubprogram"):
        return CourseCategory.CLUB_PROGRAMS
    return CourseCategory.UNKNOWN


def is_weekly_recurring(offer: Any) -> bool:
    """Weekly bucket and no sub-type/title keyword that marks a one-off or 1:1 program."""
    _require(offer)
    if classify(offer) is not CourseCategory.WEEKLY:
        return False
    if compact_key(_field(offer, "type")) in NON_CANCELLABLE_TYPES:
        return False
    if compact_key(_field(offer, "sub_type")) in NON_CANCELLABLE_SUB_TYPES:
        return False
    return not _has_exclusion_keyword(offer)


def is_cancellable(offer: Any) -> bool:
    """
    Whether a booking of this offer may be cancelled (subscription semantics).

    Rent-a-Coach and Coach Education are never cancellable. An exclusion
    keyword beats a qualifying type or category.
    """
    _require(offer)
    if _is_rent_a_coach(offer) or _is_coach_education(offer):
        return False
    if compact_key(_field(offer, "sub_type")) in NON_CANCELLABLE_SUB_TYPES:
        return False
    offer_type = compact_key(_field(offer, "type"))
    if offer_type in NON_CANCELLABLE_TYPES:
        return False
    if _has_exclusion_keyword(offer):
        return False
    return offer_type in CANCELLABLE_TYPES or classify(offer) is CourseCategory.WEEKLY


def classify_offer(offer: Any) -> OfferClassification:
    _require(offer)
    return OfferClassification(
        category=classify(offer),
        is_coach_education=_is_coach_education(offer),
        is_rent_a_coach=_is_rent_a_coach(offer),
        is_weekly_recurring=is_weekly_recurring(offer),
        is_cancellable=is_cancellable(offer),
    )


def program_abbreviation(text: Optional[str]) -> Optional[str]:
    """Short code for program names in booking lists: PWR, CMP or None."""
    folded = fold_text(text)
    if not folded:
        return None
    if "powertraining" in folded or "power training" in folded:
        return "PWR"
    if "camp" in folded:
        return "CMP"
    return None


def should_show_wish_date(text: Optional[str]) -> bool:
    """
    Whether a booking form should offer a preferred start date.

    Only weekly programs start on a chosen date; unknown text defaults to
    showing it.
    """
    folded = fold_text(text)
    if not folded:
        return True
    if any(keyword in folded for keyword in NON_WEEKLY_KEYWORDS):
        return False
    return True
