"""Login identity. Display data lives on ``Profile``."""

from typing import Optional

from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, UUIDMixin


class User(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "users"

    email: str = Field(unique=True, index=True, nullable=False)  # stored lowercased
    password_hash: Optional[str] = None  # bcrypt
