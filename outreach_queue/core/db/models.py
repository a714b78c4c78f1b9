"""SQLAlchemy declarative models for the local store."""

import time

from sqlalchemy import Column, Float, String, Text
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class LocalStoreEntry(Base):
    """One serialized collection under a well-known key."""

    __tablename__ = "local_store"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(Float, nullable=False, default=time.time)
