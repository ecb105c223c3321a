import pytest

from admix.repos.keys import AdKeys, check_id
from admix.core.errors import MalformedInputError, StoreUnavailableError


@pytest.mark.asyncio
async def test_transaction_rolls_back_on_error(store):
    await store.set("ad:meta", {"name": "before"})

    with pytest.raises(RuntimeError):
        async with store.transaction():
            await store.set("ad:meta", {"name": "after"})
            await store.set("ad:mixer", {"tracks": []})
            raise RuntimeError("boom")

    assert await store.get("ad:meta") == {"name": "before"}
    assert await store.get("ad:mixer") is None


@pytest.mark.asyncio
async def test_values_are_copied(store):
    value = {"tracks": [1]}
    await store.set("k", value)
    value["tracks"].append(2)
    fetched = await store.get("k")
    fetched["tracks"].append(3)
    assert await store.get("k") == {"tracks": [1]}


@pytest.mark.asyncio
async def test_list_keys_by_prefix(store):
    for key in ("ad:voices:version:v2", "ad:voices:version:v1", "ad:voices:active", "ad2:voices:version:v1"):
        await store.set(key, {})
    assert await store.list_keys(AdKeys.version_prefix("ad", "voices")) == [
        "ad:voices:version:v1",
        "ad:voices:version:v2",
    ]


def test_ids_cannot_escape_their_namespace():
    assert check_id("ad-1", "ad id") == "ad-1"
    for bad in ("", "ad:1"):
        with pytest.raises(MalformedInputError):
            check_id(bad, "ad id")


@pytest.mark.asyncio
async def test_savepoint_rolls_back_only_its_own_writes(store):
    async with store.transaction():
        await store.set("a", 1)
        with pytest.raises(StoreUnavailableError):
            async with store.savepoint():
                await store.set("b", 2)
                raise StoreUnavailableError("read failed")
        await store.set("c", 3)

    assert await store.get("a") == 1
    assert await store.get("b") is None
    assert await store.get("c") == 3
