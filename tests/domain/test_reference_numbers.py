"""Tests for reference number generation (expense_kernel.domain.reference)."""

import random
from datetime import datetime, timezone

import pytest

from expense_kernel.domain.reference import (
    BASE36_ALPHABET,
    generate_reference_number,
    reference_pattern,
)

NOW = datetime(2024, 5, 20, 9, 0, tzinfo=timezone.utc)


def test_default_format():
    ref = generate_reference_number(NOW)
    assert ref.startswith("EXP-20240520-")
    assert reference_pattern().match(ref)


def test_suffix_uses_base36_alphabet():
    ref = generate_reference_number(NOW, rng=random.Random(7), suffix_length=12)
    suffix = ref.rsplit("-", 1)[1]
    assert len(suffix) == 12
    assert set(suffix) <= set(BASE36_ALPHABET)


def test_seeded_rng_is_reproducible():
    a = generate_reference_number(NOW, rng=random.Random(42))
    b = generate_reference_number(NOW, rng=random.Random(42))
    assert a == b


def test_custom_prefix_and_length():
    ref = generate_reference_number(NOW, prefix="CLM", suffix_length=6)
    assert reference_pattern("CLM", 6).match(ref)
    assert not reference_pattern().match(ref)


def test_date_comes_from_submission_time():
    ref = generate_reference_number(datetime(2023, 12, 31, 23, 59, tzinfo=timezone.utc))
    assert ref.startswith("EXP-20231231-")


def test_suffix_length_must_be_positive():
    with pytest.raises(ValueError):
        generate_reference_number(NOW, suffix_length=0)
