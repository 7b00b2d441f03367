"""
Actor identity types (``expense_kernel.domain.actors``).

The identity provider is an external collaborator.  The kernel only sees
the opaque ``Actor`` triple it hands over for every operation, plus the
well-known ``SYSTEM_ACTOR`` used for automated actions such as
auto-approval.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Fixed roles.  Stages and roles are not user-definable."""

    ADMIN = "admin"
    REQUESTOR = "requestor"
    VERIFIER = "verifier"
    APPROVER = "approver"
    SYSTEM = "system"


@dataclass(frozen=True)
class Actor:
    """The authenticated user (or the system) performing an operation."""

    id: str
    display_name: str
    role: Role

    @property
    def is_system(self) -> bool:
        return self.role == Role.SYSTEM


SYSTEM_ACTOR = Actor(id="system", display_name="System", role=Role.SYSTEM)
