from sqlalchemy import Column, Text, DateTime, func
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class StorageSlot(Base):
    """
    CREATE TABLE storage_slot (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TIMESTAMPTZ DEFAULT NOW()
    );

    Key-value slots holding serialized client state. The KPI store keeps its
    whole record list as one JSON array under a single key.
    """
    __tablename__ = 'storage_slot'

    key = Column(Text, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
