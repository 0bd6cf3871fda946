"""
Authentication and role guards (fastapi-users).

Tokens are JWTs signed with ``settings.jwt_secret``. Besides the standard
``sub``/``aud``/``exp`` claims each token carries ``email``, a unique
``jti`` and the user's ``roles``. Every issued token is recorded in
``user_sessions`` (keyed by its jti); a token whose session has been
deactivated or has expired is rejected even if its signature is valid.

Routes protect themselves with either ``current_active_user`` (any
authenticated user) or ``require_roles(...)``, which authenticates first
(401) and then checks the token's role claims (403).
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import NamedTuple, Optional

import jwt
import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi_users import BaseUserManager, FastAPIUsers, UUIDIDMixin, exceptions
from fastapi_users.authentication import AuthenticationBackend, BearerTransport, JWTStrategy
from fastapi_users.jwt import decode_jwt, generate_jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from db.database import get_async_session
from db.session import UserSession
from db.users import Role, User, get_user_db

log = structlog.get_logger(__name__)

TOKEN_AUDIENCE = ["fastapi-users:auth"]
MIN_PASSWORD_LENGTH = 6


class UserManager(UUIDIDMixin, BaseUserManager[User, uuid.UUID]):
    reset_password_token_secret = settings.jwt_secret
    verification_token_secret = settings.jwt_secret

    async def validate_password(self, password: str, user) -> None:
        if len(password) < MIN_PASSWORD_LENGTH:
            raise exceptions.InvalidPasswordException(
                reason=f"Password should be at least {MIN_PASSWORD_LENGTH} characters"
            )
        if user.email and user.email.lower() in password.lower():
            raise exceptions.InvalidPasswordException(reason="Password should not contain e-mail")

    async def on_after_register(self, user: User, request: Optional[Request] = None):
        log.info("user_registered", user_id=str(user.id), email=user.email, role=user.role)


async def get_user_manager(user_db=Depends(get_user_db)):
    yield UserManager(user_db)


class IssuedToken(NamedTuple):
    token: str
    jti: str
    expires_at: datetime


class SessionJWTStrategy(JWTStrategy):
    """JWT strategy that backs every token with a ``user_sessions`` row."""

    def __init__(self, session: AsyncSession, secret: str, lifetime_seconds: int):
        super().__init__(secret=secret, lifetime_seconds=lifetime_seconds, token_audience=TOKEN_AUDIENCE)
        self.session = session

    async def issue_token(self, user: User) -> IssuedToken:
        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(seconds=self.lifetime_seconds)
        jti = str(uuid.uuid4())
        data = {
            "sub": str(user.id),
            "email": user.email,
            "jti": jti,
            "roles": user.roles,
            "aud": self.token_audience,
            "exp": expires_at,
        }
        token = generate_jwt(data, self.encode_key, None, algorithm=self.algorithm)

        self.session.add(
            UserSession(
                user_id=user.id,
                session_token=jti,
                created_at=now,
                last_accessed_at=now,
                expires_at=expires_at,
                is_active=True,
            )
        )
        await self.session.commit()
        return IssuedToken(token=token, jti=jti, expires_at=expires_at)

    async def write_token(self, user: User) -> str:
        issued = await self.issue_token(user)
        return issued.token

    async def _active_session(self, token: str) -> Optional[UserSession]:
        try:
            data = decode_jwt(token, self.decode_key, self.token_audience, algorithms=[self.algorithm])
        except jwt.PyJWTError:
            return None
        jti = data.get("jti")
        if not jti:
            return None
        res = await self.session.execute(
            select(UserSession)
            .where(UserSession.session_token == jti)
            .where(UserSession.is_active.is_(True))
            .where(UserSession.expires_at > datetime.now(timezone.utc))
        )
        return res.scalar_one_or_none()

    async def read_token(self, token: Optional[str], user_manager) -> Optional[User]:
        if token is None:
            return None
        user_session = await self._active_session(token)
        if user_session is None:
            return None
        user = await super().read_token(token, user_manager)
        if user is None or user.id != user_session.user_id:
            return None
        user_session.last_accessed_at = datetime.now(timezone.utc)
        await self.session.commit()
        return user

    async def destroy_token(self, token: str, user: User) -> None:
        user_session = await self._active_session(token)
        if user_session is None:
            return
        user_session.is_active = False
        await self.session.commit()
        log.info("session_closed", user_id=str(user.id), session_id=user_session.id)


bearer_transport = BearerTransport(tokenUrl="api/auth/login")


def get_jwt_strategy(session: AsyncSession = Depends(get_async_session)) -> SessionJWTStrategy:
    return SessionJWTStrategy(
        session=session,
        secret=settings.jwt_secret,
        lifetime_seconds=settings.jwt_lifetime_seconds,
    )


auth_backend = AuthenticationBackend(
    name="jwt",
    transport=bearer_transport,
    get_strategy=get_jwt_strategy,
)

fastapi_users = FastAPIUsers[User, uuid.UUID](get_user_manager, [auth_backend])

current_active_user = fastapi_users.current_user(active=True)


def token_roles(token: Optional[str]) -> set[str]:
    if not token:
        return set()
    try:
        claims = decode_jwt(token, settings.jwt_secret, TOKEN_AUDIENCE)
    except jwt.PyJWTError:
        return set()
    return set(claims.get("roles") or [])


def require_roles(*roles: Role):
    """Dependency factory: authenticated user whose token carries one of ``roles``."""
    allowed = {r.value for r in roles}

    async def _guard(
        token: Optional[str] = Depends(bearer_transport.scheme),
        user: User = Depends(current_active_user),
    ) -> User:
        if not allowed.intersection(token_roles(token)):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")
        return user

    return _guard
