import asyncio
import json

import pytest
from pydantic import ValidationError

from tabpulse.api.services.keep_alive import KeepAliveRegistry
from tabpulse.api.services.policy import SETTINGS_KEY, PolicyStore
from tabpulse.api.services.storage import (
    JsonFileSessionStorage,
    MemorySessionStorage,
    StoreUnavailableError,
    create_storage,
)
from tabpulse.api.services.tab_state import TabStateStore


class TestTabStateStore:
    @pytest.mark.asyncio
    async def test_unknown_tab_is_blank(self, tab_states):
        state = await tab_states.get(42)
        assert state.last_input_at is None
        assert state.heuristics == {"jankMs": 0, "rafFps": 60}
        assert await tab_states.exists(42) is False

    @pytest.mark.asyncio
    async def test_update_merges_fields(self, tab_states):
        await tab_states.update(1, last_input_at=10)
        await tab_states.update(1, media_playing=True)
        state = await tab_states.get(1)
        assert state.last_input_at == 10
        assert state.media_playing is True

    @pytest.mark.asyncio
    async def test_update_without_create_skips_missing_records(self, tab_states):
        assert await tab_states.update(4, create=False, warned_at=9) is None
        assert await tab_states.exists(4) is False

        await tab_states.update(4, last_input_at=1)
        state = await tab_states.update(4, create=False, warned_at=9)
        assert state is not None
        assert (state.last_input_at, state.warned_at) == (1, 9)

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, tab_states):
        with pytest.raises(ValueError, match="unknown TabState fields"):
            await tab_states.update(1, bogus=1)

    @pytest.mark.asyncio
    async def test_concurrent_updates_are_not_lost(self, tab_states):
        await asyncio.gather(
            *(tab_states.update(1, last_input_at=i) for i in range(20)),
            tab_states.update(1, warned_at=99),
            tab_states.update(1, websocket_active=True),
        )
        state = await tab_states.get(1)
        assert state.warned_at == 99
        assert state.websocket_active is True

    @pytest.mark.asyncio
    async def test_remove_and_at_risk(self, tab_states):
        await tab_states.update(1, warned_at=5)
        await tab_states.update(2, last_input_at=5)
        await tab_states.update(3, warned_at=7)
        assert await tab_states.at_risk() == [1, 3]

        await tab_states.remove(1)
        await tab_states.remove(1)
        assert await tab_states.at_risk() == [3]

        await tab_states.reset()
        assert await tab_states.all() == {}


class TestKeepAliveRegistry:
    @pytest.mark.asyncio
    async def test_expiry_is_checked_against_now(self, keep_alive):
        await keep_alive.set(1, 1000)
        assert await keep_alive.is_kept_alive(1, 999) is True
        assert await keep_alive.is_kept_alive(1, 1000) is False
        assert await keep_alive.is_kept_alive(2, 0) is False
        # stale entries stay until overwritten
        assert await keep_alive.expires_at(1) == 1000


class TestPolicyStore:
    @pytest.mark.asyncio
    async def test_defaults(self, policy_store):
        policy = await policy_store.get()
        assert policy.enabled is True
        assert policy.idle_minutes == 10
        assert policy.grace_period_sec == 60
        assert policy.check_interval_sec == 10
        assert policy.keep_alive_minutes == 120
        assert "youtube.com" in policy.whitelist_domains

    @pytest.mark.asyncio
    async def test_update_accepts_camel_and_snake_case(self, policy_store, storage):
        await policy_store.update({"idleMinutes": 5, "grace_period_sec": 30})
        policy = await policy_store.get()
        assert policy.idle_minutes == 5
        assert policy.grace_period_sec == 30
        stored = await storage.get(SETTINGS_KEY)
        assert stored["idle_minutes"] == 5

    @pytest.mark.asyncio
    async def test_invalid_update_is_not_written(self, policy_store):
        with pytest.raises(ValidationError):
            await policy_store.update({"idleMinutes": 0})
        assert (await policy_store.get()).idle_minutes == 10

    @pytest.mark.asyncio
    async def test_toggle(self, policy_store):
        assert (await policy_store.toggle_enabled()).enabled is False
        assert (await policy_store.toggle_enabled()).enabled is True


class TestJsonFileStorage:
    @pytest.mark.asyncio
    async def test_persists_between_instances(self, tmp_path):
        path = tmp_path / "state" / "tabpulse.json"
        first = TabStateStore(JsonFileSessionStorage(path))
        await first.update(3, last_input_at=123)
        await KeepAliveRegistry(first.storage).set(3, 456)

        second = create_storage(path)
        assert isinstance(second, JsonFileSessionStorage)
        assert (await TabStateStore(second).get(3)).last_input_at == 123
        assert await KeepAliveRegistry(second).expires_at(3) == 456

    @pytest.mark.asyncio
    async def test_corrupt_file_reports_unavailable(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        store = PolicyStore(JsonFileSessionStorage(path))
        with pytest.raises(StoreUnavailableError):
            await store.get()

    @pytest.mark.asyncio
    async def test_policy_written_as_json(self, tmp_path):
        path = tmp_path / "s.json"
        await PolicyStore(JsonFileSessionStorage(path)).update(
            {"whitelistDomains": ["Example.com ", ""]}
        )
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data[SETTINGS_KEY]["whitelist_domains"] == ["example.com"]

    @pytest.mark.asyncio
    async def test_stores_sharing_one_file_do_not_lose_writes(self, tmp_path):
        path = tmp_path / "shared.json"
        storage = JsonFileSessionStorage(path)
        keep_alive = KeepAliveRegistry(storage)
        tab_states = TabStateStore(storage)

        await asyncio.gather(
            *(keep_alive.set(i, 999) for i in range(1, 21)),
            *(tab_states.update(i, last_input_at=5) for i in range(1, 21)),
        )

        for i in range(1, 21):
            assert await keep_alive.expires_at(i) == 999
            assert (await tab_states.get(i)).last_input_at == 5
        json.loads(path.read_text(encoding="utf-8"))
        assert list(tmp_path.iterdir()) == [path]


@pytest.mark.asyncio
async def test_memory_storage_returns_copies():
    storage = MemorySessionStorage()
    value = {"a": [1]}
    await storage.set("k", value)
    value["a"].append(2)
    got = await storage.get("k")
    got["a"].append(3)
    assert await storage.get("k") == {"a": [1]}
    assert isinstance(create_storage(None), MemorySessionStorage)
