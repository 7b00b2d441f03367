"""
Expense reference numbers (``expense_kernel.domain.reference``).

Format: ``<prefix>-YYYYMMDD-XXXX`` where the date is the UTC submission
day and ``XXXX`` is a random upper-case base-36 suffix.  Uniqueness is
enforced by the database; callers regenerate on collision.
"""

from __future__ import annotations

import random
import re
import string
from datetime import datetime

BASE36_ALPHABET = string.digits + string.ascii_uppercase

DEFAULT_PREFIX = "EXP"
DEFAULT_SUFFIX_LENGTH = 4

_SYSTEM_RANDOM = random.SystemRandom()


def generate_reference_number(
    now: datetime,
    rng: random.Random | None = None,
    prefix: str = DEFAULT_PREFIX,
    suffix_length: int = DEFAULT_SUFFIX_LENGTH,
) -> str:
    """Build a reference number for an expense submitted at ``now``."""
    if suffix_length < 1:
        raise ValueError("suffix_length must be at least 1")
    rng = rng or _SYSTEM_RANDOM
    suffix = "".join(rng.choice(BASE36_ALPHABET) for _ in range(suffix_length))
    return f"{prefix}-{now.strftime('%Y%m%d')}-{suffix}"


def reference_pattern(
    prefix: str = DEFAULT_PREFIX,
    suffix_length: int = DEFAULT_SUFFIX_LENGTH,
) -> re.Pattern[str]:
    return re.compile(
        rf"^{re.escape(prefix)}-\d{{8}}-[0-9A-Z]{{{suffix_length}}}$"
    )
