from __future__ import annotations

import hashlib

INSTANCE_ID_LENGTH = 12

_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def deterministic_instance_id(*, page_id: str, block_id: str, insertion_index: int, seed: str) -> str:
    """Derive a short, stable block instance id.

    SHA-1 over ``page_id:block_id:insertion_index:seed``, read as an unsigned
    integer, rendered in lowercase base 36 and cut to 12 characters. The same
    inputs always give the same id.
    """
    digest = hashlib.sha1(f"{page_id}:{block_id}:{insertion_index}:{seed}".encode("utf-8")).hexdigest()
    return _to_base36(int(digest, 16))[:INSTANCE_ID_LENGTH]
