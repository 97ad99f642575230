"""String and phonetic comparators used by feature extraction.

Every comparator takes two raw values and returns a similarity in
[0.0, 1.0]. Missing values follow one convention throughout: two missing
values compare as 1.0, a one-sided missing value compares as 0.0.

Edit-distance similarities are computed with rapidfuzz. Soundex and
Metaphone are small enough to encode here.
"""

import re
from typing import Any

from rapidfuzz.distance import JaroWinkler, Levenshtein

_WHITESPACE = re.compile(r"\s+")
_NON_ALPHA = re.compile(r"[^A-Z]")

_SOUNDEX_TABLE = {
    "B": "1", "F": "1", "P": "1", "V": "1",
    "C": "2", "G": "2", "J": "2", "K": "2", "Q": "2", "S": "2", "X": "2", "Z": "2",
    "D": "3", "T": "3",
    "L": "4",
    "M": "5", "N": "5",
    "R": "6",
}  # fmt: skip

_VOWELS = frozenset("AEIOU")
_FRONT_VOWELS = frozenset("EIY")


def _missing_similarity(a: Any, b: Any) -> float | None:
    """Return the similarity dictated by missing values, or None if both present."""
    if a is None and b is None:
        return 1.0
    if a is None or b is None:
        return 0.0
    return None


def _prepare(value: Any) -> str:
    """Lowercase, collapse whitespace and strip a value coerced to str."""
    return _WHITESPACE.sub(" ", str(value).lower()).strip()


def exact_match(a: Any, b: Any, case_sensitive: bool = True) -> float:
    """Return 1.0 when both values are equal, 0.0 otherwise.

    Strings are compared case-insensitively when ``case_sensitive`` is False.
    """
    missing = _missing_similarity(a, b)
    if missing is not None:
        return missing

    if isinstance(a, str) and isinstance(b, str):
        if case_sensitive:
            return 1.0 if a == b else 0.0
        return 1.0 if a.lower() == b.lower() else 0.0

    return 1.0 if a == b else 0.0


def levenshtein(a: Any, b: Any) -> float:
    """Normalised Levenshtein similarity: 1 - distance / max(len(a), len(b)).

    Comparison is case-insensitive with whitespace collapsed.
    """
    missing = _missing_similarity(a, b)
    if missing is not None:
        return missing

    left, right = _prepare(a), _prepare(b)
    if not left and not right:
        return 1.0
    if not left or not right:
        return 0.0
    return float(Levenshtein.normalized_similarity(left, right))


def jaro_winkler(a: Any, b: Any, prefix_weight: float = 0.1) -> float:
    """Jaro-Winkler similarity (case-insensitive)."""
    missing = _missing_similarity(a, b)
    if missing is not None:
        return missing

    left, right = _prepare(a), _prepare(b)
    if not left and not right:
        return 1.0
    if not left or not right:
        return 0.0
    return float(JaroWinkler.normalized_similarity(left, right, prefix_weight=prefix_weight))


def soundex_encode(name: str) -> str:
    """Encode a name into its four character Soundex code.

    Example:
        >>> soundex_encode("Robert")
        'R163'
        >>> soundex_encode("Smyth")
        'S530'
        >>> soundex_encode("Ashcraft")
        'A261'
    """
    normalized = _NON_ALPHA.sub("", name.upper())
    if not normalized:
        return ""

    first = normalized[0]
    code = [first]
    prev = _SOUNDEX_TABLE.get(first, "")

    for char in normalized[1:]:
        digit = _SOUNDEX_TABLE.get(char)
        if digit:
            if digit != prev:
                code.append(digit)
            prev = digit
        elif char not in "HW":
            # vowels separate runs of the same digit, h and w do not
            prev = ""
        if len(code) >= 4:
            break

    return "".join(code).ljust(4, "0")[:4]


def soundex(a: Any, b: Any) -> float:
    """Return 1.0 when both values share a Soundex code, 0.0 otherwise."""
    missing = _missing_similarity(a, b)
    if missing is not None:
        return missing

    code_a, code_b = soundex_encode(str(a)), soundex_encode(str(b))
    if not code_a and not code_b:
        return 1.0
    if not code_a or not code_b:
        return 0.0
    return 1.0 if code_a == code_b else 0.0


def metaphone_encode(word: str, max_length: int = 4) -> str:
    """Encode a word with the original Metaphone rules.

    ``0`` stands for the "th" sound and ``X`` for "sh"/"ch".

    Example:
        >>> metaphone_encode("Thomas")
        '0MS'
        >>> metaphone_encode("Knight")
        'NT'
    """
    text = _NON_ALPHA.sub("", word.upper())
    if not text:
        return ""

    # Initial letter exceptions
    if text[:2] in ("AE", "GN", "KN", "PN", "WR"):
        text = text[1:]
    elif text[0] == "X":
        text = "S" + text[1:]
    elif text[:2] == "WH":
        text = "W" + text[2:]

    length = len(text)
    code: list[str] = []

    def at(index: int) -> str:
        return text[index] if 0 <= index < length else ""

    i = 0
    while i < length and len(code) < max_length:
        char = text[i]
        prev, nxt = at(i - 1), at(i + 1)

        # Skip duplicate adjacent letters except C
        if char == prev and char != "C":
            i += 1
            continue

        if char in _VOWELS:
            if i == 0:
                code.append(char)
        elif char == "B":
            if not (prev == "M" and i == length - 1):
                code.append("B")
        elif char == "C":
            if nxt == "I" and at(i + 2) == "A":
                code.append("X")
            elif nxt == "H":
                code.append("X")
                i += 1
            elif nxt in _FRONT_VOWELS:
                if prev != "S":
                    code.append("S")
            else:
                code.append("K")
        elif char == "D":
            if nxt == "G" and at(i + 2) in _FRONT_VOWELS:
                code.append("J")
                i += 2
            else:
                code.append("T")
        elif char == "G":
            if nxt == "H" and at(i + 2) and at(i + 2) not in _VOWELS:
                pass
            elif nxt == "N" and (i + 2 == length or text[i + 2 :] == "ED"):
                pass
            elif nxt in _FRONT_VOWELS and prev != "G":
                code.append("J")
            else:
                code.append("K")
        elif char == "H":
            if nxt in _VOWELS and (not prev or prev not in "CSPTG"):
                code.append("H")
        elif char == "K":
            if prev != "C":
                code.append("K")
        elif char == "P":
            if nxt == "H":
                code.append("F")
                i += 1
            else:
                code.append("P")
        elif char == "Q":
            code.append("K")
        elif char == "S":
            if nxt == "H":
                code.append("X")
                i += 1
            elif nxt == "I" and at(i + 2) in ("O", "A"):
                code.append("X")
            else:
                code.append("S")
        elif char == "T":
            if nxt == "I" and at(i + 2) in ("O", "A"):
                code.append("X")
            elif nxt == "H":
                code.append("0")
                i += 1
            elif not (nxt == "C" and at(i + 2) == "H"):
                code.append("T")
        elif char == "V":
            code.append("F")
        elif char in ("W", "Y"):
            if nxt in _VOWELS:
                code.append(char)
        elif char == "X":
            code.append("KS")
        elif char == "Z":
            code.append("S")
        else:
            # F, J, L, M, N, R encode as themselves
            code.append(char)
        i += 1

    return "".join(code)[:max_length]


def metaphone(a: Any, b: Any) -> float:
    """Return 1.0 when both values share a Metaphone code, 0.0 otherwise."""
    missing = _missing_similarity(a, b)
    if missing is not None:
        return missing

    code_a, code_b = metaphone_encode(str(a)), metaphone_encode(str(b))
    if not code_a and not code_b:
        return 1.0
    if not code_a or not code_b:
        return 0.0
    return 1.0 if code_a == code_b else 0.0
