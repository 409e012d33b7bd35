"""
Tests for the conversation state stores.

Both stores must honor the same compare-and-set contract.
"""

from datetime import datetime, timedelta

import pytest

from kanemane.conversation import InMemoryConversationStore, normalize_actor
from kanemane.models.conversation import ConversationState, ConversationStep
from kanemane.services.storage import SqlConversationStore


NOW = datetime(2026, 3, 15, 9, 0, 0)
LATER = NOW + timedelta(seconds=601)


def make_state(actor="628111", step=ConversationStep.EXPORT_PERIOD, data=None, ttl=600):
    return ConversationState(
        actor=actor,
        step=step,
        data=data or {},
        expires_at=NOW + timedelta(seconds=ttl),
    )


@pytest.fixture(params=["memory", "sql"])
def store(request, database):
    if request.param == "memory":
        return InMemoryConversationStore()
    return SqlConversationStore(database)


class TestNormalizeActor:

    def test_strips_chat_suffixes(self):
        assert normalize_actor("6281234567890@c.us") == "6281234567890"
        assert normalize_actor("123456789@lid") == "123456789"
        assert normalize_actor("6281234567890@s.whatsapp.net") == "6281234567890"

    def test_bare_id_unchanged(self):
        assert normalize_actor(" 6281234567890 ") == "6281234567890"


class TestConversationStore:

    async def test_create_and_get(self, store):
        assert await store.create(make_state(data={"type": "cash"}), NOW) is True

        state = await store.get("628111", NOW)
        assert state.step is ConversationStep.EXPORT_PERIOD
        assert state.data == {"type": "cash"}
        assert state.version == 1

    async def test_get_missing(self, store):
        assert await store.get("628111", NOW) is None

    async def test_create_fails_when_live_state_exists(self, store):
        await store.create(make_state(), NOW)
        assert await store.create(make_state(step=ConversationStep.ASSET_CREATION_TYPE), NOW) is False
        assert (await store.get("628111", NOW)).step is ConversationStep.EXPORT_PERIOD

    async def test_create_replaces_expired_state(self, store):
        await store.create(make_state(), NOW)
        fresh = make_state(step=ConversationStep.ASSET_CREATION_TYPE).model_copy(
            update={"expires_at": LATER + timedelta(seconds=600)}
        )
        assert await store.create(fresh, LATER) is True
        assert (await store.get("628111", LATER)).step is ConversationStep.ASSET_CREATION_TYPE

    async def test_expired_state_is_invisible(self, store):
        await store.create(make_state(), NOW)
        assert await store.get("628111", NOW + timedelta(seconds=599)) is not None
        assert await store.get("628111", NOW + timedelta(seconds=600)) is None

    async def test_replace_with_matching_version(self, store):
        state = make_state()
        await store.create(state, NOW)
        successor = state.refreshed(
            ConversationStep.ASSET_CREATION_COUNTRY, {"type": "cash"}, NOW, 600
        )

        assert await store.replace(successor, 1, NOW) is True
        current = await store.get("628111", NOW)
        assert current.version == 2
        assert current.step is ConversationStep.ASSET_CREATION_COUNTRY

    async def test_replace_with_stale_version_fails(self, store):
        state = make_state()
        await store.create(state, NOW)
        await store.replace(state.refreshed(state.step, {}, NOW, 600), 1, NOW)

        stale = state.refreshed(ConversationStep.ASSET_CREATION_NAME, {}, NOW, 600)
        assert await store.replace(stale, 1, NOW) is False
        assert (await store.get("628111", NOW)).step is ConversationStep.EXPORT_PERIOD

    async def test_replace_expired_state_fails(self, store):
        state = make_state()
        await store.create(state, NOW)
        successor = state.refreshed(state.step, {}, LATER, 600)
        assert await store.replace(successor, 1, LATER) is False

    async def test_claim_only_once(self, store):
        await store.create(make_state(), NOW)

        assert await store.claim("628111", 1, NOW) is True
        assert await store.claim("628111", 1, NOW) is False
        assert await store.get("628111", NOW) is None

    async def test_claim_wrong_version_fails(self, store):
        await store.create(make_state(), NOW)
        assert await store.claim("628111", 2, NOW) is False
        assert await store.get("628111", NOW) is not None

    async def test_claim_expired_state_fails(self, store):
        await store.create(make_state(), NOW)
        assert await store.claim("628111", 1, LATER) is False

    async def test_clear(self, store):
        await store.create(make_state(), NOW)
        await store.clear("628111")
        await store.clear("628111")
        assert await store.get("628111", NOW) is None

    async def test_actors_are_independent(self, store):
        await store.create(make_state(actor="628111"), NOW)
        await store.create(make_state(actor="628222", step=ConversationStep.ASSET_CREATION_TYPE), NOW)

        await store.claim("628111", 1, NOW)
        assert (await store.get("628222", NOW)).step is ConversationStep.ASSET_CREATION_TYPE
