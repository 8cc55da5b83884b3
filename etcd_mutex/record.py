# record.py

import json
from dataclasses import dataclass
from typing import Optional

from .errors import StoreError

UNLOCKED = 0


@dataclass(frozen=True)
class LockRecord:
    """
    Persisted state of one named lock.

    holder_id is 0 when the lock is free and the holder's session id otherwise.
    holder_id and value are None when the attribute has never been written.
    last_write is a nanosecond wall-clock timestamp.
    """
    name: str
    holder_id: Optional[int] = None
    last_write: int = 0
    value: Optional[str] = None

    @property
    def is_locked(self) -> bool:
        return bool(self.holder_id)

    def encode(self) -> bytes:
        doc = {"Name": self.name, "LastWrite": self.last_write}
        if self.holder_id is not None:
            doc["HolderID"] = self.holder_id
        if self.value is not None:
            doc["Value"] = self.value
        return json.dumps(doc, sort_keys=True).encode("utf-8")

    @classmethod
    def decode(cls, raw) -> "LockRecord":
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            doc = json.loads(raw)
        except ValueError as e:
            raise StoreError(f"Stored lock record is not valid JSON: {e}") from e
        if not isinstance(doc, dict) or "Name" not in doc:
            raise StoreError(f"Stored lock record has an unexpected shape: {raw!r}")
        return cls(
            name=doc["Name"],
            holder_id=doc.get("HolderID"),
            last_write=doc.get("LastWrite", 0),
            value=doc.get("Value"),
        )
