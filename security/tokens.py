import hashlib
import hmac
import secrets


def new_raw_token() -> str:
    # 32 random bytes, URL-safe so it can sit in an invitation link as-is
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    # SHA-256 is fine for hashing random invitation tokens
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def keys_match(expected: str, provided: str) -> bool:
    if not expected or not provided:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))
