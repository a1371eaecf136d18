from datetime import datetime, timedelta
from typing import Optional, Dict, Any, Tuple
from jose import ExpiredSignatureError, JWTError, jwt
import bcrypt
import hashlib
import hmac
import re
import secrets
import uuid

from app.core.config import settings
from app.core.exceptions import UnauthorizedError

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password"""
    if not hashed_password:
        return False
    # Bcrypt has a 72 byte limit - truncate password if necessary
    password_bytes = plain_password.encode('utf-8')[:72]
    return bcrypt.checkpw(password_bytes, hashed_password.encode('utf-8'))


def get_password_hash(password: str) -> str:
    """Hash password with configurable rounds (BCRYPT_ROUNDS in .env)"""
    password_bytes = password.encode('utf-8')[:72]
    hashed = bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS))
    return hashed.decode('utf-8')


def validate_password_strength(password: str) -> Optional[str]:
    """Return a human readable problem with the password, or None when it is acceptable"""
    if len(password) < PASSWORD_MIN_LENGTH:
        return f"Password must be at least {PASSWORD_MIN_LENGTH} characters"
    if len(password) > PASSWORD_MAX_LENGTH:
        return f"Password must be at most {PASSWORD_MAX_LENGTH} characters"
    if not re.search(r"[a-z]", password):
        return "Password must contain at least one lowercase letter"
    if not re.search(r"[A-Z]", password):
        return "Password must contain at least one uppercase letter"
    if not re.search(r"\d", password):
        return "Password must contain at least one number"
    if not re.search(r"[^A-Za-z0-9]", password):
        return "Password must contain at least one special character"
    return None


def _encode(claims: Dict[str, Any], expire: datetime) -> str:
    to_encode = claims.copy()
    to_encode.update({
        "exp": expire,
        "iat": datetime.utcnow(),
        "iss": settings.JWT_ISSUER,
        "aud": settings.JWT_AUDIENCE,
    })
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    return _encode({**data, "type": "access"}, expire)


def create_refresh_token(user_id: int, remember_me: bool = False) -> Tuple[str, str, datetime]:
    """
    Create JWT refresh token.

    Returns (token, token_id, expires_at). The token_id is stored server side
    so the token can be revoked.
    """
    days = settings.REFRESH_TOKEN_REMEMBER_ME_DAYS if remember_me else settings.REFRESH_TOKEN_EXPIRE_DAYS
    expires_at = datetime.utcnow() + timedelta(days=days)
    token_id = uuid.uuid4().hex
    token = _encode(
        {"sub": str(user_id), "jti": token_id, "type": "refresh", "remember_me": remember_me},
        expires_at,
    )
    return token, token_id, expires_at


def decode_token(token: str, verify_exp: bool = True) -> Dict[str, Any]:
    """Decode JWT token, raising UnauthorizedError when it cannot be trusted"""
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            issuer=settings.JWT_ISSUER,
            options={"verify_exp": verify_exp},
        )
    except ExpiredSignatureError:
        raise UnauthorizedError("Token has expired", code="TOKEN_EXPIRED")
    except JWTError:
        raise UnauthorizedError("Could not validate credentials", code="INVALID_TOKEN")


# ==================== Ebook access tokens ====================

def create_ebook_access_token(user_id: int, book_id: int, edition_id: int) -> Tuple[str, datetime]:
    """Signed, short-lived token granting one user access to one ebook file"""
    expires_at = datetime.utcnow() + timedelta(seconds=settings.EBOOK_URL_EXPIRY_SECONDS)
    token = _encode(
        {
            "sub": str(user_id),
            "book_id": book_id,
            "edition_id": edition_id,
            "type": "ebook_access",
        },
        expires_at,
    )
    return token, expires_at


def verify_ebook_access_token(token: str) -> Dict[str, Any]:
    payload = decode_token(token)
    if payload.get("type") != "ebook_access":
        raise UnauthorizedError("Invalid token type", code="INVALID_TOKEN")
    return payload


# ==================== OTP codes ====================

def generate_otp_code(length: int = 6) -> str:
    """Random numeric code, never starting with zero"""
    low = 10 ** (length - 1)
    return str(low + secrets.randbelow(9 * low))


def hash_otp_code(code: str) -> str:
    return hashlib.sha256(f"{settings.SECRET_KEY}:{code}".encode()).hexdigest()


def verify_otp_code(code: str, code_hash: str) -> bool:
    # Constant-time comparison to prevent timing attacks
    return hmac.compare_digest(hash_otp_code(code), code_hash)
