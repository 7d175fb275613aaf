"""User model: display fields owned by the account subsystem, read by messaging."""

from __future__ import annotations

import uuid

from sqlalchemy import Column, String, Uuid

from app.db import Base
from app.models.mixins import TimestampMixin


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(50), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    avatar = Column(String(1024), nullable=True)
