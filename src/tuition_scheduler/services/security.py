'''
Bearer token handling: issues and decodes JWTs and resolves them into the
Actor every booking operation is authorized against.
'''
from datetime import datetime, timedelta, timezone
from typing import Optional, Annotated
from uuid import UUID
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..common.config import settings
from ..common.logger import log
from ..database import models as db_models
from ..database.db_enums import UserRole, UserStatus
from ..database.engine import get_session_factory
from ..models.token import Actor, TokenPayload

# --- JWT Handling ---
class JWTHandler:
    @staticmethod
    def create_access_token(
        subject: UUID | str,
        role: UserRole,
        expires_delta: Optional[timedelta] = None
    ) -> str:
        if expires_delta is None:
            expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

        expire = datetime.now(timezone.utc) + expires_delta
        to_encode = {"sub": str(subject), "role": UserRole(role).value, "exp": expire}
        return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    @staticmethod
    def decode_token(token: str) -> TokenPayload | None:
        try:
            payload = jwt.decode(
                token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
            )
            return TokenPayload(**payload)
        except (JWTError, ValueError) as e: # Catch Pydantic validation errors too
            log.warning(f"JWT decode/validation error: {e}")
            return None

# --- JWT Verification Dependency Function ---
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")

async def verify_token_and_get_actor(
    token: Annotated[str, Depends(oauth2_scheme)],
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]
    ) -> Actor:
    """
    Dependency to verify the JWT and turn it into an Actor.
    Tutor and student tokens must still point at an active tutor / student.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token_data = JWTHandler.decode_token(token)
    if not token_data:
        log.warning("JWT decode failed or invalid token structure.")
        raise credentials_exception

    if token_data.role != UserRole.ADMIN:
        model = db_models.Tutors if token_data.role == UserRole.TUTOR else db_models.Students
        # short-lived session: the booking services open their own transactions
        async with session_factory() as db:
            party = await db.get(model, token_data.sub)
        if party is None:
            log.warning(f"{token_data.role.value} '{token_data.sub}' not found during token verification.")
            raise credentials_exception
        if party.status != UserStatus.ACTIVE.value:
            log.warning(f"{token_data.role.value} '{token_data.sub}' is not active.")
            raise credentials_exception

    log.info(f"JWT verified successfully for {token_data.role.value} {token_data.sub}")
    return Actor(id=token_data.sub, role=token_data.role)
