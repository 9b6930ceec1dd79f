"""
ClassTest - Security Module
JWT verification for tokens issued by the login service
"""
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from classtest.core.config import settings


class TokenExpired(Exception):
    """The token signature is valid but its exp claim has passed."""
    pass


def create_access_token(
    subject: str | int,
    expires_delta: timedelta | None = None,
    additional_claims: dict[str, Any] | None = None
) -> str:
    """
    Create a JWT access token.
    
    Login lives in a separate service; this mirrors its token layout so
    tests and local tooling can mint compatible tokens.
    
    Args:
        subject: The token subject (student or teacher id)
        expires_delta: Optional custom expiration time
        additional_claims: Optional additional JWT claims (role, grade, class, ...)
    
    Returns:
        Encoded JWT token string
    """
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )
    
    to_encode = {
        "sub": str(subject),
        "exp": expire,
        "iat": datetime.now(timezone.utc),
        "type": "access"
    }
    
    if additional_claims:
        to_encode.update(additional_claims)
    
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> dict[str, Any] | None:
    """
    Decode and validate a JWT token.
    
    Args:
        token: The JWT token to decode
    
    Returns:
        Decoded token payload or None if invalid
    
    Raises:
        TokenExpired: If the token was valid but has expired
    """
    try:
        payload = jwt.decode(
            token, 
            settings.SECRET_KEY, 
            algorithms=[settings.ALGORITHM]
        )
        return payload
    except ExpiredSignatureError as e:
        raise TokenExpired("Token expired") from e
    except JWTError:
        return None


def normalize_class(value: Any) -> int | None:
    """Convert a class claim such as "1/15" or "15" to the class number."""
    text = str(value or "").strip()
    if not text:
        return None
    if "/" in text:
        text = text.split("/", 1)[1]
    try:
        return int(text)
    except ValueError:
        return None
