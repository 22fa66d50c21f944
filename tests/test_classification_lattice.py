from __future__ import annotations

import pytest

from engine.classification import DEFAULT_LEVELS, ClassificationLattice
from engine.errors import UnknownClassification


def test_default_levels_are_ranked_lowest_first():
    lattice = ClassificationLattice()
    assert [c.name for c in lattice.levels()] == list(DEFAULT_LEVELS)
    assert [c.rank for c in lattice] == list(range(len(DEFAULT_LEVELS)))
    assert lattice.lowest.name == "UNCLASSIFIED"
    assert lattice.highest.name == "TOP_SECRET"


def test_at_least_as_restrictive_is_reflexive_and_ordered():
    lattice = ClassificationLattice()
    secret = lattice.get("SECRET")
    confidential = lattice.get("CONFIDENTIAL")

    assert lattice.at_least_as_restrictive(secret, secret)
    assert lattice.at_least_as_restrictive(secret, confidential)
    assert not lattice.at_least_as_restrictive(confidential, secret)


def test_max_returns_more_restrictive_level():
    lattice = ClassificationLattice()
    secret = lattice.get("SECRET")
    restricted = lattice.get("RESTRICTED")

    assert lattice.max(secret, restricted) == secret
    assert lattice.max(restricted, secret) == secret


def test_lookup_is_case_insensitive_and_rejects_unknown():
    lattice = ClassificationLattice()
    assert lattice.get(" secret ") == lattice.get("SECRET")
    assert "top_secret" in lattice
    assert "COSMIC" not in lattice

    with pytest.raises(UnknownClassification) as exc:
        lattice.get("COSMIC")
    assert exc.value.code == "FG-CLS-001"


def test_custom_levels_and_invalid_configuration():
    lattice = ClassificationLattice(["public", "internal", "secret"])
    assert len(lattice) == 3
    assert lattice.get("INTERNAL").rank == 1

    with pytest.raises(ValueError):
        ClassificationLattice([])
    with pytest.raises(ValueError):
        ClassificationLattice(["A", "a"])


def test_foreign_classification_is_not_a_member():
    ours = ClassificationLattice(["LOW", "HIGH"])
    theirs = ClassificationLattice(["HIGH", "LOW"])
    assert theirs.get("HIGH") not in ours
    assert ours.get("HIGH") in ours
