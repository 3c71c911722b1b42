"""
items/store.py -- SQLAlchemy Core persistence for the example Item resource.

Pattern: Repository + Data Mapper, same as auth/store.py. Every query is
scoped by owner_id, so a caller can never read or change another user's
items through this interface.

UNIQUE(owner_id, name): two users may both have an item called "todo", one
user may not have two. Inserts and renames that break this raise
sqlalchemy.exc.IntegrityError; the routes map that to 409.

Usage:
    store = ItemStore(db.engine)
    item_id = store.create_item(Item(owner_id=uid, name="todo"))
    items = store.list_items(uid)
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, UniqueConstraint
from sqlalchemy.engine import Engine

from items.models import Item

_metadata = MetaData()

_items = Table(
    "items",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("owner_id", String(32), nullable=False, index=True),
    Column("name", String(100), nullable=False),
    Column("description", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    UniqueConstraint("owner_id", "name", name="uq_items_owner_name"),
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class ItemStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        _metadata.create_all(self.engine)

    def create_item(self, item: Item) -> int:
        """Insert a new item and return its assigned database ID."""
        now = _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                _items.insert().values(
                    owner_id=item.owner_id,
                    name=item.name,
                    description=item.description,
                    created_at=now,
                    updated_at=now,
                )
            )
            return result.inserted_primary_key[0]

    def get_item(self, owner_id: str, item_id: int) -> Optional[Item]:
        """Fetch one item. Returns None if it does not exist or belongs to someone else."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _items.select().where((_items.c.id == item_id) & (_items.c.owner_id == owner_id))
            ).fetchone()
        return _row_to_item(row) if row is not None else None

    def list_items(self, owner_id: str) -> list[Item]:
        """Return the owner's items, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _items.select().where(_items.c.owner_id == owner_id).order_by(_items.c.id)
            ).fetchall()
        return [_row_to_item(r) for r in rows]

    def update_item(self, owner_id: str, item_id: int, **fields) -> bool:
        """Update name and/or description. Returns False if no such item for this owner."""
        fields["updated_at"] = _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                _items.update()
                .where((_items.c.id == item_id) & (_items.c.owner_id == owner_id))
                .values(**fields)
            )
        return result.rowcount > 0

    def delete_item(self, owner_id: str, item_id: int) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(
                _items.delete().where((_items.c.id == item_id) & (_items.c.owner_id == owner_id))
            )
        return result.rowcount > 0


def _row_to_item(row) -> Item:
    return Item(
        id=row.id,
        owner_id=row.owner_id,
        name=row.name,
        description=row.description,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
