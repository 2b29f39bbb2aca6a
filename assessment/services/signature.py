"""
Structure signature of a module's required content

64-bit FNV-1a over the sorted section ids and sorted micro-quiz ids.
Compared for equality only; must be identical across process restarts.
"""
from typing import Iterable, Optional

FNV_OFFSET_BASIS_64 = 0xCBF29CE484222325
FNV_PRIME_64 = 0x100000001B3
MASK_64 = 0xFFFFFFFFFFFFFFFF

# ASCII unit / record separators never occur in content ids
ID_SEPARATOR = "\x1f"
LIST_SEPARATOR = "\x1e"


def fnv1a_64(data: bytes) -> int:
    h = FNV_OFFSET_BASIS_64
    for byte in data:
        h ^= byte
        h = (h * FNV_PRIME_64) & MASK_64
    return h


def canonical_structure(
    required_sections: Optional[Iterable[str]],
    micro_quizzes: Optional[Iterable[str]]
) -> str:
    sections = sorted(str(s) for s in (required_sections or ()))
    quizzes = sorted(str(q) for q in (micro_quizzes or ()))
    return ID_SEPARATOR.join(sections) + LIST_SEPARATOR + ID_SEPARATOR.join(quizzes)


def structure_signature(
    required_sections: Optional[Iterable[str]],
    micro_quizzes: Optional[Iterable[str]]
) -> str:
    """Fixed-width (16 hex chars) signature, independent of input order"""
    canonical = canonical_structure(required_sections, micro_quizzes)
    return f"{fnv1a_64(canonical.encode('utf-8')):016x}"
