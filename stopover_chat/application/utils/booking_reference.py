from __future__ import annotations

import hashlib

_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
PNR_LENGTH = 5


def mint_booking_reference(original_pnr: str, seed: str) -> str:
    """Derive a new 5-character booking reference that differs from the original.

    Deterministic for a given (original_pnr, seed) pair so a repeated
    confirmation for the same selection yields the same reference.
    """
    salt = 0
    while True:
        digest = hashlib.sha256(f"{original_pnr}:{seed}:{salt}".encode("utf-8")).digest()
        candidate = "".join(_ALPHABET[b % len(_ALPHABET)] for b in digest[:PNR_LENGTH])
        if candidate != original_pnr.upper():
            return candidate
        salt += 1
