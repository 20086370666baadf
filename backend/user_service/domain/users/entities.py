"""
User Domain Entities

Core domain entity for the user store. Shared by the store of record, the
cache and the HTTP layer, so it carries no persistence concerns.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ...constants import MAX_USER_ID_LENGTH


@dataclass
class User:
    """
    User entity.

    ``id`` is assigned by the store of record on first save and never changes
    afterwards. ``created_at`` is stamped once, on first persistence.
    """

    id: Optional[str] = None
    name: Optional[str] = None
    age: Optional[int] = None
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        """Validate entity invariants."""
        if self.id is not None:
            if not isinstance(self.id, str):
                raise TypeError(f"User id must be a string, got {type(self.id).__name__}")
            if not self.id.strip():
                raise ValueError("User id cannot be blank")
            if len(self.id) > MAX_USER_ID_LENGTH:
                raise ValueError(
                    f"User id too long (max {MAX_USER_ID_LENGTH} characters)"
                )

        if self.age is not None and (
            isinstance(self.age, bool) or not isinstance(self.age, int)
        ):
            raise TypeError(f"User age must be an integer, got {type(self.age).__name__}")

        if self.created_at is not None and self.created_at.tzinfo is None:
            self.created_at = self.created_at.replace(tzinfo=timezone.utc)

    @property
    def is_new(self) -> bool:
        """True until the store of record has assigned an id."""
        return self.id is None

    def with_details(self, name: Optional[str], age: Optional[int]) -> "User":
        """Return a copy with ``name`` and ``age`` overwritten."""
        return replace(self, name=name, age=age)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-safe dict."""
        return {
            "id": self.id,
            "name": self.name,
            "age": self.age,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        """Deserialize from the dict produced by :meth:`to_dict`."""
        created_at = data.get("created_at")
        return cls(
            id=data.get("id"),
            name=data.get("name"),
            age=data.get("age"),
            created_at=datetime.fromisoformat(created_at) if created_at else None,
        )
