from admix.models.base import Base
from admix.models.kv_entry import KvEntry

__all__ = [
    "Base",
    "KvEntry",
]
