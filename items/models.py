"""
items/models.py -- Domain dataclass for the example Item resource.

Pure data container. Ownership rules live in the routes; persistence lives
in items/store.py.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Item:
    """A named note owned by one user.

    id is None before the record is written to the database.
    """

    owner_id: str
    name: str
    description: Optional[str] = None
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""
