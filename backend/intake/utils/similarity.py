"""
Filename similarity for duplicate detection.

Scores are normalised Levenshtein similarity over lower-cased names. The
``_v<N>`` suffix appended to re-uploaded versions is ignored, so a new version
of a file scores as a near-certain match against its predecessor.
"""
import re

from rapidfuzz.distance import Levenshtein

VERSION_SUFFIX = re.compile(r"_v\d+(?=\.[^.]+$|$)", re.IGNORECASE)


def normalise_filename(name: str) -> str:
    return VERSION_SUFFIX.sub("", name.strip().lower())


def filename_similarity(a: str, b: str) -> float:
    left = normalise_filename(a)
    right = normalise_filename(b)
    if not left or not right:
        return 0.0
    return Levenshtein.normalized_similarity(left, right)
