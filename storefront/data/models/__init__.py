#import wszystkich modeli zeby SQLAlchemy je zarejestrowal w base metadata

from storefront.data.models.cart_snapshot import CartSnapshotModel

__all__ = ["CartSnapshotModel"]
