from admix.core.config import settings
from admix.core.db import get_db

__all__ = ["settings", "get_db"]
