"""Tests for the module structure signature."""

import random

from assessment.services.signature import fnv1a_64, structure_signature


def test_fnv1a_reference_vectors() -> None:
    assert fnv1a_64(b"") == 0xCBF29CE484222325
    assert fnv1a_64(b"a") == 0xAF63DC4C8601EC8C


def test_signature_is_fixed_width_hex() -> None:
    sig = structure_signature(["s1", "s2"], ["mq1"])
    assert len(sig) == 16
    int(sig, 16)


def test_signature_ignores_order() -> None:
    sections = [f"s{i}" for i in range(12)]
    quizzes = [f"mq{i}" for i in range(7)]
    expected = structure_signature(sections, quizzes)

    rng = random.Random(7)
    for _ in range(20):
        shuffled_sections = sections[:]
        shuffled_quizzes = quizzes[:]
        rng.shuffle(shuffled_sections)
        rng.shuffle(shuffled_quizzes)
        assert structure_signature(shuffled_sections, shuffled_quizzes) == expected


def test_signature_changes_with_structure() -> None:
    base = structure_signature(["s1", "s2"], ["mq1"])
    assert structure_signature(["s1"], ["mq1"]) != base
    assert structure_signature(["s1", "s2"], ["mq1", "mq2"]) != base
    assert structure_signature(["s1", "s2", "mq1"], []) != base
    assert structure_signature(["a"], []) != structure_signature([], ["a"])
    assert structure_signature(["ab"], []) != structure_signature(["a", "b"], [])


def test_signature_of_empty_structure_is_stable() -> None:
    assert structure_signature(None, None) == structure_signature([], [])
    assert structure_signature([], []) == structure_signature((), ())
