"""
Пароли (bcrypt), одноразовые коды и подписи вебхуков
"""

import hashlib
import hmac
import secrets

import bcrypt


def _to_bcrypt_secret(password: str) -> bytes:
    """bcrypt использует только первые 72 байта пароля"""
    pw = password.encode("utf-8")
    if len(pw) > 72:
        pw = pw[:72]
    return pw


def hash_password(password: str) -> str:
    hashed = bcrypt.hashpw(_to_bcrypt_secret(password), bcrypt.gensalt(rounds=12))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    return bcrypt.checkpw(_to_bcrypt_secret(password), password_hash.encode("utf-8"))


def generate_otp(length: int = 6) -> str:
    """Числовой код фиксированной длины, с ведущими нулями"""
    return f"{secrets.randbelow(10 ** length):0{length}d}"


def compute_webhook_signature(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_webhook_signature(raw_body: bytes, signature: str, secret: str) -> bool:
    """HMAC-SHA256 по сырому телу запроса, сравнение за постоянное время"""
    if not signature or not secret:
        return False
    expected = compute_webhook_signature(raw_body, secret)
    return hmac.compare_digest(expected, signature)
