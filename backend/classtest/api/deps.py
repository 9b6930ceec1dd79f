"""
ClassTest - API Dependencies
Token validation and role checks for tokens issued by the login service
"""
from dataclasses import dataclass
from typing import Annotated, Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from classtest.core.database import get_db
from classtest.core.security import TokenExpired, decode_token, normalize_class

# Security scheme
security = HTTPBearer(auto_error=False)

ROLE_STUDENT = "student"
ROLE_TEACHER = "teacher"
ROLE_ADMIN = "admin"


def _as_int(value: Any) -> int | None:
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


@dataclass
class TokenUser:
    """Claims of a validated access token."""
    role: str
    subject: str
    student_id: str | None = None
    teacher_id: str | None = None
    name: str | None = None
    surname: str | None = None
    nickname: str | None = None
    grade: int | None = None
    class_: int | None = None
    number: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "TokenUser":
        role = claims.get("role") or ""
        subject = str(claims.get("sub") or "")
        student_id = claims.get("student_id") or (subject if role == ROLE_STUDENT else None)
        teacher_id = claims.get("teacher_id") or (subject if role == ROLE_TEACHER else None)
        return cls(
            role=role,
            subject=subject,
            student_id=str(student_id) if student_id else None,
            teacher_id=str(teacher_id) if teacher_id else None,
            name=claims.get("name"),
            surname=claims.get("surname"),
            nickname=claims.get("nickname"),
            grade=_as_int(claims.get("grade")),
            class_=normalize_class(claims.get("class")),
            number=_as_int(claims.get("number")),
        )


async def validate_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> TokenUser:
    """
    Validate the bearer token and return its claims.
    
    Raises:
        HTTPException: 401 if the header is missing, the token is invalid or expired
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header missing or invalid",
            headers={"WWW-Authenticate": "Bearer"},
        )
    
    try:
        payload = decode_token(credentials.credentials)
    except TokenExpired:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    
    if not payload or payload.get("type", "access") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    
    return TokenUser.from_claims(payload)


def require_role(*roles: str):
    """
    Dependency factory for role-based access control.
    
    Usage:
        @router.get("/retests")
        async def list_retests(user: TokenUser = Depends(require_role("teacher", "admin"))):
            ...
    """
    async def role_checker(
        current_user: Annotated[TokenUser, Depends(validate_token)],
    ) -> TokenUser:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {' or '.join(roles)}",
            )
        return current_user
    
    return role_checker


async def get_current_student(
    current_user: Annotated[TokenUser, Depends(require_role(ROLE_STUDENT))],
) -> TokenUser:
    """Student caller with a student_id claim."""
    if not current_user.student_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Token has no student_id",
        )
    return current_user


# Type aliases for common dependencies
CurrentUser = Annotated[TokenUser, Depends(validate_token)]
CurrentStudent = Annotated[TokenUser, Depends(get_current_student)]
CurrentStaff = Annotated[TokenUser, Depends(require_role(ROLE_TEACHER, ROLE_ADMIN))]
DbSession = Annotated[AsyncSession, Depends(get_db)]
