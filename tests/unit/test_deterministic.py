import pytest

from blueprint_orchestrator.intelligence.deterministic import (
    DeterministicCache,
    cache_key,
    generate_seed,
    sha256_hex,
)
from blueprint_orchestrator.storage.base import CACHE
from blueprint_orchestrator.storage.memory import InMemoryStore


def test_cache_key_is_pure() -> None:
    first = cache_key("s1", "task-0", "openai", "modelA", "hello")
    second = cache_key("s1", "task-0", "openai", "modelA", "hello")

    assert first == second
    assert len(first) == 64


@pytest.mark.parametrize(
    "args",
    [
        ("s2", "task-0", "openai", "modelA", "hello"),
        ("s1", "task-1", "openai", "modelA", "hello"),
        ("s1", "task-0", "other", "modelA", "hello"),
        ("s1", "task-0", "openai", "modelB", "hello"),
        ("s1", "task-0", "openai", "modelA", "hello!"),
    ],
)
def test_cache_key_changes_with_any_component(args) -> None:
    assert cache_key(*args) != cache_key("s1", "task-0", "openai", "modelA", "hello")


def test_cache_key_hashes_prompt_before_combining() -> None:
    expected = sha256_hex(f"s1:task-0:openai:modelA:{sha256_hex('hello')}")
    assert cache_key("s1", "task-0", "openai", "modelA", "hello") == expected


def test_generate_seed_depends_on_master_key_project_and_prompt() -> None:
    seed = generate_seed("proj", "build a shop", master_key="k1")

    assert seed == generate_seed("proj", "build a shop", master_key="k1")
    assert seed != generate_seed("proj", "build a shop", master_key="k2")
    assert seed != generate_seed("proj-2", "build a shop", master_key="k1")
    assert seed != generate_seed("proj", "build a blog", master_key="k1")


@pytest.mark.asyncio
async def test_deterministic_cache_round_trip() -> None:
    store = InMemoryStore()
    cache = DeterministicCache(store)

    assert await cache.get("missing") is None
    await cache.set("abc", "cached text")

    assert await cache.get("abc") == "cached text"
    record = await store.get(CACHE, "abc")
    assert record["key"] == "abc"
    assert record["timestamp"]
