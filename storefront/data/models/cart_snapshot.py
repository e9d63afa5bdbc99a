#storefront/data/models/cart_snapshot.py
from datetime import datetime, timezone

from sqlalchemy import Column, String, Text, DateTime

from storefront.data.database import Base


class CartSnapshotModel(Base):
    __tablename__ = "cart_snapshots"

    #jeden wiersz na klucz storage, payload to caly CartState w jsonie
    storage_key = Column(String(100), primary_key=True)
    payload = Column(Text, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
