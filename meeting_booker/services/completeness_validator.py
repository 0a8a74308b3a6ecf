# meeting_booker/services/completeness_validator.py
from __future__ import annotations

from typing import Callable, Optional

from meeting_booker.schemas.booking import RowRecord, ValidationOutcome

# Label -> accessor, checked in this order.
ESSENTIAL_FIELDS: tuple[tuple[str, Callable[[RowRecord], object]], ...] = (
    ("Meeting Name", lambda r: r.topic),
    ("Date Chosen", lambda r: r.date_text),
    ("Team Invitees", lambda r: r.team),
    ("Zoom Account to book from", lambda r: r.provisioning_account),
    ("Invitees", lambda r: r.participants),
)


class CompletenessValidator:
    """
    Classifies a normalized row as ready to book or incomplete.

    Rules
    -----
    - Already booked rows are not validated at all (None is returned) so
      they are neither booked again nor reported as missing anything.
    - Every essential field must be truthy: non-empty text, non-empty
      participant list.
    """

    @staticmethod
    def missing_fields(record: RowRecord) -> list[str]:
        return [label for label, accessor in ESSENTIAL_FIELDS if not accessor(record)]

    @staticmethod
    def has_any_essential(record: RowRecord) -> bool:
        return any(accessor(record) for _, accessor in ESSENTIAL_FIELDS)

    @classmethod
    def validate(cls, record: RowRecord) -> Optional[ValidationOutcome]:
        if record.already_booked:
            return None
        return ValidationOutcome(record=record, missing=tuple(cls.missing_fields(record)))
