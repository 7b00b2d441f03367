"""
ExpenseConfig schema.

Defines the human-authored, reviewable configuration of an expense
deployment: policy toggles, reference-number format, and the reference
data (categories, projects, sites, users) seeded into an empty store.
YAML files are parsed into these types by the loader and checked by the
validator before ``get_active_config()`` hands them out.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from expense_kernel.domain.actors import Role
from expense_kernel.domain.policy import PolicySettings
from expense_kernel.domain.reference import DEFAULT_PREFIX, DEFAULT_SUFFIX_LENGTH

# ---------------------------------------------------------------------------
# Runtime settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReferenceSettings:
    """Format of generated reference numbers (``PREFIX-YYYYMMDD-XXXX``)."""

    prefix: str = DEFAULT_PREFIX
    suffix_length: int = DEFAULT_SUFFIX_LENGTH
    max_attempts: int = 10


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SeedSubcategory:
    id: str
    name: str
    attachment_required: bool = False


@dataclass(frozen=True)
class SeedCategory:
    id: str
    name: str
    attachment_required: bool = False
    auto_approve_amount: Decimal = Decimal("0")
    subcategories: tuple[SeedSubcategory, ...] = ()


@dataclass(frozen=True)
class SeedNamed:
    """A project or site: just an id and a display name."""

    id: str
    name: str


@dataclass(frozen=True)
class SeedUser:
    id: str
    username: str
    name: str
    email: str
    role: Role


@dataclass(frozen=True)
class SeedData:
    categories: tuple[SeedCategory, ...] = ()
    projects: tuple[SeedNamed, ...] = ()
    sites: tuple[SeedNamed, ...] = ()
    users: tuple[SeedUser, ...] = ()

    @property
    def record_count(self) -> int:
        return (
            len(self.categories)
            + sum(len(c.subcategories) for c in self.categories)
            + len(self.projects)
            + len(self.sites)
            + len(self.users)
        )


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExpenseConfig:
    """
    A complete, parsed configuration set.

    ``checksum`` is the SHA-256 of the canonical JSON form of the source
    YAML and identifies exactly which configuration governed a seed.
    """

    name: str
    version: int = 1
    description: str = ""
    policy: PolicySettings = field(default_factory=PolicySettings)
    reference: ReferenceSettings = field(default_factory=ReferenceSettings)
    seed: SeedData = field(default_factory=SeedData)
    checksum: str = ""
