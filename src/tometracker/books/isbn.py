"""ISBN normalization and validation.

Every identifier that enters the catalog goes through
``normalize_to_isbn13`` so the (user, isbn13) uniqueness guard compares
like with like.
"""

import re
from typing import Optional

ISBN10_PATTERN = re.compile(r"[0-9]{9}[0-9X]", re.IGNORECASE)
ISBN13_PATTERN = re.compile(r"[0-9]{13}")

# Order matters: a 13-digit Bookland EAN is preferred over a bare ISBN-10
BARCODE_PATTERNS = [
    re.compile(r"978[0-9]{10}"),
    re.compile(r"979[0-9]{10}"),
    ISBN10_PATTERN,
]

_SEPARATORS = re.compile(r"[-\s]")


def clean_isbn(raw: str) -> str:
    """Strip dashes and whitespace."""
    return _SEPARATORS.sub("", raw or "")


def normalize_to_isbn13(raw: Optional[str]) -> Optional[str]:
    """Canonicalize an ISBN-10 or ISBN-13 to a 13-digit string.

    Args:
        raw: Identifier as typed, scanned or imported

    Returns:
        13-digit ISBN, or None when the value is not a usable ISBN
    """
    if not raw:
        return None

    cleaned = clean_isbn(raw)

    if ISBN13_PATTERN.fullmatch(cleaned):
        return cleaned

    if ISBN10_PATTERN.fullmatch(cleaned) and is_valid_isbn10(cleaned):
        return isbn10_to_isbn13(cleaned)

    return None


def is_valid_isbn10(value: str) -> bool:
    """Check an ISBN-10 checksum (last character may be X = 10)."""
    if not ISBN10_PATTERN.fullmatch(value or ""):
        return False

    total = 0
    for i, char in enumerate(value.upper()):
        digit = 10 if char == "X" else int(char)
        total += digit * (10 - i)
    return total % 11 == 0


def calculate_isbn13_check_digit(first12: str) -> str:
    """Compute the ISBN-13 check digit for the first 12 digits."""
    total = 0
    for i, char in enumerate(first12[:12]):
        digit = int(char)
        total += digit if i % 2 == 0 else digit * 3
    return str((10 - total % 10) % 10)


def isbn10_to_isbn13(isbn10: str) -> str:
    """Convert an ISBN-10 to ISBN-13 (978 prefix, fresh check digit)."""
    base = "978" + isbn10[:9]
    return base + calculate_isbn13_check_digit(base)


def isbn13_to_isbn10(isbn13: str) -> Optional[str]:
    """Convert a 978-prefixed ISBN-13 back to ISBN-10.

    Returns None for 979 ISBNs, which have no ISBN-10 form.
    """
    if not is_valid_isbn13(isbn13) or not isbn13.startswith("978"):
        return None

    body = isbn13[3:12]
    total = sum(int(char) * (10 - i) for i, char in enumerate(body))
    check = (11 - total % 11) % 11
    return body + ("X" if check == 10 else str(check))


def is_valid_isbn13(value: Optional[str]) -> bool:
    """Check that value is 13 digits with a correct check digit."""
    if not value or not ISBN13_PATTERN.fullmatch(value):
        return False

    total = 0
    for i, char in enumerate(value):
        digit = int(char)
        total += digit if i % 2 == 0 else digit * 3
    return total % 10 == 0


def extract_isbn_from_barcode(raw: Optional[str]) -> Optional[str]:
    """Pull a valid ISBN-13 out of a scanned barcode payload.

    Tolerates extraneous prefixes and suffixes, e.g. ``EAN 9780765311788``.
    """
    if not raw:
        return None

    normalized = normalize_to_isbn13(raw)
    if normalized and is_valid_isbn13(normalized):
        return normalized

    for pattern in BARCODE_PATTERNS:
        match = pattern.search(raw)
        if match:
            result = normalize_to_isbn13(match.group())
            if result and is_valid_isbn13(result):
                return result

    return None
