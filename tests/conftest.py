import os
import sys
from pathlib import Path

import pytest

# Ensure repo root on sys.path for imports from anywhere in tests tree.
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("STORE_BACKEND", "memory")

from admix.repos.kv_repo import InMemoryKeyValueStore  # noqa: E402
from admix.services.mixer_service import MixerService  # noqa: E402
from admix.services.version_service import VersionService  # noqa: E402


@pytest.fixture
def store():
    return InMemoryKeyValueStore()


@pytest.fixture
def versions(store):
    return VersionService(store)


@pytest.fixture
def mixer(store):
    return MixerService(store)
