from datetime import datetime, timezone
from enum import Enum

from fastapi_users_db_sqlalchemy import SQLAlchemyBaseUserTableUUID, SQLAlchemyUserDatabase
from fastapi import Depends
from sqlalchemy import Column, DateTime, String
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import relationship
from .database import Base, get_async_session


class Role(str, Enum):
    MANAGER = "Manager"
    EMPLOYEE = "Employee"
    CUSTOMER = "Customer"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLAlchemyBaseUserTableUUID, Base):
    __tablename__ = "users"

    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    # Nullable so the integrity check can report users without a role
    role = Column(String, nullable=True, index=True)

    sessions = relationship("UserSession", cascade="all, delete-orphan", passive_deletes=True)

    @property
    def roles(self) -> list[str]:
        return [self.role] if self.role else []


async def get_user_db(session: AsyncSession = Depends(get_async_session)):
    yield SQLAlchemyUserDatabase(session, User)
