"""Profile model: display data and the remembered organization for a user."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel


class Profile(SQLModel, table=True):
    __tablename__ = "profiles"

    id: uuid.UUID = Field(foreign_key="users.id", primary_key=True)
    full_name: Optional[str] = None
    current_organization_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="organizations.id"
    )
