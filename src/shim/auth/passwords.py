# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from typing import Optional

import bcrypt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_LENGTH = 128

# Fixed cost: every stored hash embeds these parameters and its own salt.
_PH = PasswordHasher(time_cost=3, memory_cost=65536, parallelism=4, hash_len=32, salt_len=16)


def hash_password(plain: str) -> str:
    if not plain:
        raise ValueError("Empty password")
    return _PH.hash(plain)


def is_bcrypt_hash(hash_value: str) -> bool:
    """Records written by older installs hold bcrypt ($2a$, $2b$, $2y$) hashes."""
    return hash_value.startswith(("$2a$", "$2b$", "$2y$"))


def verify_password(hash_value: str, plain: str) -> bool:
    if not hash_value or not plain:
        return False
    if is_bcrypt_hash(hash_value):
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), hash_value.encode("utf-8"))
        except ValueError:
            return False
    try:
        return _PH.verify(hash_value, plain)
    except (VerificationError, InvalidHashError):
        return False


def length_problem(plain: str) -> Optional[str]:
    n = len(plain or "")
    if n < MIN_PASSWORD_LENGTH:
        return f"Sorry, but your password needs to be at least {MIN_PASSWORD_LENGTH} characters long."
    if n > MAX_PASSWORD_LENGTH:
        return f"Please use a password that's at most {MAX_PASSWORD_LENGTH} characters."
    return None


def password_problem(old: str, new: str, confirm: str) -> Optional[str]:
    """Check a password change request. Returns a user-facing message or None."""
    if new != confirm:
        return "Sorry, but your new password and its confirmation don't match! Please try again."
    problem = length_problem(new)
    if problem:
        return problem
    if old == new:
        return "Your old and new passwords cannot match!"
    return None
