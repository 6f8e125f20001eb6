"""Order numbers: ``ORD-YYYYMMDD-XXXXXX``.

The date is the UTC day the order was placed; the suffix is six characters
drawn from ``A-Z0-9`` with ``secrets``. Random suffixes can collide, so the
generator checks every candidate against the numbers it has already issued
and against persisted orders, and draws again on a clash.
"""

import re
import secrets
import string
import threading
from collections.abc import Callable
from datetime import date, datetime

from marketplace.errors import OrderNumberExhaustedError
from marketplace.utils.timestamps import as_utc, utcnow

SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
SUFFIX_LENGTH = 6
MAX_ATTEMPTS = 20

ORDER_NUMBER_PATTERN = re.compile(r"^ORD-(\d{8})-([A-Z0-9]{6})$")


def is_valid_order_number(value: str, today: date | None = None) -> bool:
    """Well-formed, names a real date, and that date is not after ``today`` (UTC)."""
    match = ORDER_NUMBER_PATTERN.match(value or "")
    if match is None:
        return False
    try:
        issued_on = datetime.strptime(match.group(1), "%Y%m%d").date()
    except ValueError:
        return False
    return issued_on <= (today or utcnow().date())


class OrderNumberGenerator:
    def __init__(self, exists: Callable[[str], bool] | None = None) -> None:
        self._exists = exists
        self._issued: set[str] = set()
        self._lock = threading.Lock()

    def _candidate(self, day: date) -> str:
        suffix = "".join(secrets.choice(SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))
        return f"ORD-{day:%Y%m%d}-{suffix}"

    def generate(self, at: datetime | None = None) -> str:
        day = (as_utc(at) or utcnow()).date()
        for _ in range(MAX_ATTEMPTS):
            candidate = self._candidate(day)
            with self._lock:
                if candidate in self._issued:
                    continue
                if self._exists is not None and self._exists(candidate):
                    continue
                self._issued.add(candidate)
                return candidate
        raise OrderNumberExhaustedError(f"{day:%Y-%m-%d}")
