import random
import re
from typing import Optional


class CatalogCodeValidator:
    """Catalog codes printed on each copy: ISBN-like, digits and a possible 'X'."""

    CODE_LENGTH = 13

    @staticmethod
    def normalize(raw: Optional[str]) -> str:
        if raw is None:
            return ""
        s = re.sub(r"[^0-9Xx]", "", raw)
        return s.upper()

    @staticmethod
    def is_valid_isbn(isbn: Optional[str]) -> bool:
        """ISBN-10/ISBN-13 checksum for a book's own ISBN."""
        s = CatalogCodeValidator.normalize(isbn)
        if len(s) == 10:
            total = 0
            for i, ch in enumerate(s[:-1], 1):
                if not ch.isdigit():
                    return False
                total += i * int(ch)
            check = s[-1]
            check_val = 10 if check == "X" else int(check)
            return (total + 10 * check_val) % 11 == 0
        if len(s) == 13 and s.isdigit():
            total = sum((1 if i % 2 == 0 else 3) * int(ch) for i, ch in enumerate(s[:-1]))
            return (10 - (total % 10)) % 10 == int(s[-1])
        return False

    @staticmethod
    def generate(rng: Optional[random.Random] = None) -> str:
        """Random 13-digit code with no leading zero."""
        rng = rng or random.SystemRandom()
        return str(rng.randint(10 ** 12, 10 ** 13 - 1))


class TextValidator:
    @staticmethod
    def is_non_empty(text: Optional[str]) -> bool:
        return text is not None and bool(text.strip())

    @staticmethod
    def sanitize_text(text: Optional[str]) -> str:
        if text is None:
            return ""
        # strip tags; names end up in reports and the admin UI
        cleaned = re.sub(r"<[^>]*>", "", text)
        return cleaned.strip()
