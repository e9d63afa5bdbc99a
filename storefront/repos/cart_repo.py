# storefront/repos/cart_repo.py
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.orm import Session

from storefront.data.models.cart_snapshot import CartSnapshotModel


class CartSnapshotRepo:
    """
    Trwaly zapis koszyka: jeden zserializowany blob pod jednym kluczem.
    Sesja otwierana per operacja, store koszyka zyje dluzej niz request.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def load(self, storage_key: str) -> str | None:
        db = self.session_factory()
        try:
            row = db.get(CartSnapshotModel, storage_key)
            return row.payload if row else None
        finally:
            db.close()

    def save(self, storage_key: str, payload: str) -> None:
        db = self.session_factory()
        try:
            row = db.get(CartSnapshotModel, storage_key)
            if row:
                row.payload = payload
                row.updated_at = datetime.now(timezone.utc)
            else:
                db.add(CartSnapshotModel(storage_key=storage_key, payload=payload))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def delete(self, storage_key: str) -> None:
        db = self.session_factory()
        try:
            row = db.get(CartSnapshotModel, storage_key)
            if row:
                db.delete(row)
                db.commit()
        finally:
            db.close()
