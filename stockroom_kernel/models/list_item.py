"""
ListItemRecord -- one row per item of a local list.

All five lists share a single table keyed by ``list_name``; the item's
typed fields live in a JSON column so the local store accepts the same
field vocabulary as the remote one.  ``item_key`` is the identifier
returned to callers as ``Entity.entity_id``.
"""

from typing import Any

from sqlalchemy import JSON, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stockroom_kernel.db.base import TrackedBase


class ListItemRecord(TrackedBase):
    __tablename__ = "list_items"
    __table_args__ = (
        UniqueConstraint("list_name", "item_key", name="uq_list_items_key"),
        Index("idx_list_items_list", "list_name"),
    )

    list_name: Mapped[str] = mapped_column(String(50), nullable=False)
    item_key: Mapped[str] = mapped_column(String(64), nullable=False)
    fields: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<ListItemRecord {self.list_name}/{self.item_key}>"
