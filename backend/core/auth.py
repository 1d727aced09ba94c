"""
Admin authentication (fastapi-users).

Routes depend on `current_active_user` (any active admin or staff account)
or `current_active_superuser` (super-admin only). The first registered
account becomes the super-admin; after that only a super-admin may register
staff accounts.
"""

import logging
import uuid
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi_users import BaseUserManager, FastAPIUsers, UUIDIDMixin, exceptions, models, schemas
from fastapi_users.authentication import AuthenticationBackend, BearerTransport, JWTStrategy
from fastapi_users.db import SQLAlchemyUserDatabase
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from db.database import get_async_session
from db.users import User

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


async def superuser_exists(db: AsyncSession) -> bool:
    res = await db.execute(select(func.count(User.id)).where(User.is_superuser == True))  # noqa: E712
    return int(res.scalar_one() or 0) > 0


async def get_user_db(session: AsyncSession = Depends(get_async_session)):
    yield SQLAlchemyUserDatabase(session, User)


class UserManager(UUIDIDMixin, BaseUserManager[User, uuid.UUID]):
    reset_password_token_secret = settings.jwt_secret
    verification_token_secret = settings.jwt_secret

    async def validate_password(self, password: str, user) -> None:
        if len(password) < MIN_PASSWORD_LENGTH:
            raise exceptions.InvalidPasswordException(
                reason=f"Password should be at least {MIN_PASSWORD_LENGTH} characters"
            )

    async def create(
        self,
        user_create: schemas.UC,
        safe: bool = False,
        request: Optional[Request] = None,
    ) -> models.UP:
        first = not await superuser_exists(self.user_db.session)
        user = await super().create(user_create, safe=safe, request=request)
        if first:
            user = await self.user_db.update(user, {"is_superuser": True, "is_verified": True})
        logger.info("Registered %s account %s", "superadmin" if first else "staff", user.id)
        return user


async def get_user_manager(user_db: SQLAlchemyUserDatabase = Depends(get_user_db)):
    yield UserManager(user_db)


bearer_transport = BearerTransport(tokenUrl="auth/jwt/login")


def get_jwt_strategy() -> JWTStrategy:
    return JWTStrategy(secret=settings.jwt_secret, lifetime_seconds=settings.jwt_lifetime_seconds)


auth_backend = AuthenticationBackend(
    name="jwt",
    transport=bearer_transport,
    get_strategy=get_jwt_strategy,
)

fastapi_users = FastAPIUsers[User, uuid.UUID](get_user_manager, [auth_backend])

current_active_user = fastapi_users.current_user(active=True)
current_active_superuser = fastapi_users.current_user(active=True, superuser=True)
optional_user = fastapi_users.current_user(active=True, optional=True)


async def staff_registration_allowed(
    caller: Optional[User] = Depends(optional_user),
    db: AsyncSession = Depends(get_async_session),
) -> None:
    """Open until a super-admin exists, then super-admin only."""
    if not await superuser_exists(db):
        return
    if caller is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Auth required for staff accounts")
    if not caller.is_superuser:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only superadmin can create staff accounts")
