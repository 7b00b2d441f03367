"""
Configuration Loader (``expense_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the typed
``expense_config.schema`` dataclasses.  Runtime callers go through
``expense_config.get_active_config()`` instead of calling this directly.

Invariants enforced
-------------------
* Required keys (ids, names, usernames, roles) raise ``KeyError`` when
  missing; optional keys fall back to the schema defaults.
* Money values are parsed from their string form into ``Decimal``.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  source document.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Unknown role or non-numeric amount  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from expense_config.schema import (
    ExpenseConfig,
    ReferenceSettings,
    SeedCategory,
    SeedData,
    SeedNamed,
    SeedSubcategory,
    SeedUser,
)
from expense_kernel.domain.actors import Role
from expense_kernel.domain.policy import PolicySettings


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def parse_amount(value: Any) -> Decimal:
    """Parse a money amount; YAML floats go through ``str`` first."""
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Cannot parse amount from {value!r}") from None


def parse_policy(data: dict[str, Any]) -> PolicySettings:
    defaults = PolicySettings()
    return PolicySettings(
        enforce_transition_table=bool(
            data.get("enforce_transition_table", defaults.enforce_transition_table)
        ),
        enforce_subcategory_attachment=bool(
            data.get(
                "enforce_subcategory_attachment",
                defaults.enforce_subcategory_attachment,
            )
        ),
        currency_symbol=str(data.get("currency_symbol", defaults.currency_symbol)),
    )


def parse_reference(data: dict[str, Any]) -> ReferenceSettings:
    defaults = ReferenceSettings()
    return ReferenceSettings(
        prefix=str(data.get("prefix", defaults.prefix)),
        suffix_length=int(data.get("suffix_length", defaults.suffix_length)),
        max_attempts=int(data.get("max_attempts", defaults.max_attempts)),
    )


def parse_category(data: dict[str, Any]) -> SeedCategory:
    """
    Parse a ``SeedCategory`` (with nested subcategories) from a dict.

    Raises:
        KeyError: if ``id`` or ``name`` is missing.
        ValueError: if ``auto_approve_amount`` is not numeric.
    """
    return SeedCategory(
        id=str(data["id"]),
        name=data["name"],
        attachment_required=bool(data.get("attachment_required", False)),
        auto_approve_amount=parse_amount(data.get("auto_approve_amount", 0)),
        subcategories=tuple(
            SeedSubcategory(
                id=str(sub["id"]),
                name=sub["name"],
                attachment_required=bool(sub.get("attachment_required", False)),
            )
            for sub in data.get("subcategories", [])
        ),
    )


def parse_named(data: dict[str, Any]) -> SeedNamed:
    return SeedNamed(id=str(data["id"]), name=data["name"])


def parse_user(data: dict[str, Any]) -> SeedUser:
    """
    Parse a ``SeedUser`` from a dict.

    Raises:
        KeyError: if a required key is missing.
        ValueError: if ``role`` is not a known role.
    """
    return SeedUser(
        id=str(data["id"]),
        username=data["username"],
        name=data["name"],
        email=data.get("email", ""),
        role=Role(data["role"]),
    )


def parse_seed(data: dict[str, Any]) -> SeedData:
    return SeedData(
        categories=tuple(parse_category(c) for c in data.get("categories", [])),
        projects=tuple(parse_named(p) for p in data.get("projects", [])),
        sites=tuple(parse_named(s) for s in data.get("sites", [])),
        users=tuple(parse_user(u) for u in data.get("users", [])),
    )


def parse_config(data: dict[str, Any], default_name: str = "default") -> ExpenseConfig:
    """
    Parse a full ``ExpenseConfig`` from a loaded YAML document.

    Postconditions:
        - ``checksum`` is computed over ``data`` exactly as loaded.
    """
    return ExpenseConfig(
        name=data.get("name", default_name),
        version=int(data.get("version", 1)),
        description=data.get("description", ""),
        policy=parse_policy(data.get("policy") or {}),
        reference=parse_reference(data.get("reference") or {}),
        seed=parse_seed(data.get("seed") or {}),
        checksum=compute_checksum(data),
    )


def load_config_file(path: Path) -> ExpenseConfig:
    """Load and parse one configuration file; the file stem is the default name."""
    return parse_config(load_yaml_file(path), default_name=path.stem)


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Postconditions:
        - Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
