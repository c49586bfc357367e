import pytest

from polychat.chat.client import ChatClient
from polychat.chat.directory import UserDirectory
from polychat.chat.models import AI_CHANNEL, USER_SEARCH
from polychat.errors import ServiceError


async def _settle(store, *clients):
    await store.wait_idle()
    for client in clients:
        await client.mailbox.drain()
    await store.wait_idle()


@pytest.fixture
async def make_client(store, paths, fake_ai):
    directory = UserDirectory(store, paths)
    clients = []

    async def factory(user_id, name):
        await directory.register(user_id, name)
        client = ChatClient(store, fake_ai, user_id, name, target_lang="Spanish", paths=paths)
        await client.start()
        clients.append(client)
        return client

    yield factory
    for client in clients:
        await client.stop()


@pytest.mark.asyncio
async def test_first_dm_reaches_partner_unread_then_stays_read(store, make_client):
    alice = await make_client("u1", "Alice")
    bob = await make_client("u2", "Bob")

    channel_id = alice.start_dm("u2", "Bob")
    await alice.send("Hello")
    await _settle(store, alice, bob)

    assert channel_id == "dm_u1_u2"
    entry = bob.channels.find(channel_id)
    assert entry.name == "Alice"
    assert entry.unread is True

    window = bob.open_channel(channel_id)
    await alice.send("Are you there?")
    await _settle(store, alice, bob)

    assert bob.channels.find(channel_id).unread is False
    assert [m.original_text for m in window.messages] == ["Hello", "Are you there?"]
    assert [c.id for c in bob.channel_list].count(channel_id) == 1


@pytest.mark.asyncio
async def test_send_records_validation_error(make_client):
    alice = await make_client("u1", "Alice")

    assert alice.active_channel_id == USER_SEARCH
    assert await alice.send("Hello") is None
    assert alice.last_error


@pytest.mark.asyncio
async def test_translation_failure_is_surfaced(store, paths, fake_ai, make_client):
    fake_ai.translate.side_effect = ServiceError("HTTP error! status: 500", action="translate")
    alice = await make_client("u1", "Alice")
    alice.start_dm("u2", "Bob")

    assert await alice.send("Hello") is None
    assert alice.last_error == "HTTP error! status: 500"
    assert await store.query(paths.channel_messages("dm_u1_u2")) == []


@pytest.mark.asyncio
async def test_reply_failure_sets_last_error(fake_ai, make_client):
    fake_ai.generate_reply.side_effect = ServiceError("HTTP error! status: 500")
    alice = await make_client("u1", "Alice")
    alice.open_channel(AI_CHANNEL)

    outcome = await alice.send("Hola")

    assert outcome is not None
    assert len(outcome.messages) == 2
    assert alice.last_error == outcome.error == "AI failed to generate response."


@pytest.mark.asyncio
async def test_tutor_send_uses_context(fake_ai, make_client):
    alice = await make_client("u1", "Alice")
    alice.open_channel(AI_CHANNEL)
    alice.ai_context.topic = "Ordering food"

    await alice.send("I want tacos")

    assert fake_ai.generate_reply.await_args.args[3] == "Topic: Ordering food. Grammar Focus: None."
    assert alice.last_error is None


@pytest.mark.asyncio
async def test_delete_active_channel_redirects_and_closes_history(make_client):
    alice = await make_client("u1", "Alice")
    channel_id = alice.start_dm("u2", "Bob")
    window = alice.history(channel_id)

    alice.delete_channel(channel_id)

    assert alice.active_channel_id == USER_SEARCH
    assert alice.channels.find(channel_id) is None
    assert window._sub is None
    assert alice.history(channel_id) is not window


@pytest.mark.asyncio
async def test_virtual_views_have_no_history(make_client):
    alice = await make_client("u1", "Alice")

    assert alice.open_channel(USER_SEARCH) is None
    assert alice.open_channel("notebook") is None
    assert alice.open_channel(AI_CHANNEL) is not None
    assert alice.active_channel_id == AI_CHANNEL


@pytest.mark.asyncio
async def test_presence_only_for_dm_partners(store, make_client):
    alice = await make_client("u1", "Alice")
    await make_client("u2", "Bob")

    assert alice.presence_for(AI_CHANNEL) is None
    assert alice.presence_for(USER_SEARCH) is None
    assert alice.presence_for("dm_u1_u1") is None

    tracker = alice.presence_for("dm_u1_u2")
    await store.wait_idle()

    assert tracker is alice.presence_for("dm_u1_u2")
    assert tracker.partner.display_name == "Bob"
    assert tracker.online is True
