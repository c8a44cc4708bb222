from __future__ import annotations

import bcrypt


BCRYPT_ROUNDS = 12


def hash_password(password: str) -> str:
    # Salted bcrypt hash; the cost factor is embedded in the result.
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS))
    return hashed.decode("utf-8")


def verify_password(password: str, hashed: str | None) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash.
        return False
