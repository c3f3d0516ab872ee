from __future__ import annotations

import uuid
from datetime import timedelta

import pytest

from chat_sync.domain.value_objects.enums import LoadState
from chat_sync.services.conversation_store import ConversationStore
from tests.conftest import T0, make_conversation, make_message


@pytest.fixture
def store(user_id) -> ConversationStore:
    return ConversationStore(user_id)


def _load(store: ConversationStore, conversation_id, rows):
    generation = store.generation(conversation_id)
    store.begin_loading(conversation_id)
    return store.apply_messages(conversation_id, rows, generation)


def test_messages_are_ordered_by_server_time_not_arrival(store, other_id):
    cid = uuid.uuid4()
    late = make_message(cid, other_id, created_at=T0 + timedelta(seconds=5))
    early = make_message(cid, other_id, created_at=T0)

    assert _load(store, cid, [late, early]) is True
    assert [m.id for m in store.messages(cid)] == [early.id, late.id]

    middle = make_message(cid, other_id, created_at=T0 + timedelta(seconds=2))
    assert store.add_message(middle) is True
    assert [m.id for m in store.messages(cid)] == [early.id, middle.id, late.id]


def test_state_machine_moves_through_loading_and_stale(store, other_id):
    cid = uuid.uuid4()
    assert store.state_of(cid) == LoadState.UNLOADED

    store.begin_loading(cid)
    assert store.state_of(cid) == LoadState.LOADING

    store.apply_messages(cid, [], store.generation(cid))
    assert store.state_of(cid) == LoadState.LOADED

    assert store.invalidate(cid) == LoadState.STALE
    assert store.stale_conversations() == [cid]


def test_load_started_before_invalidation_stays_stale(store, other_id):
    cid = uuid.uuid4()
    generation = store.generation(cid)
    store.begin_loading(cid)
    store.invalidate(cid)

    row = make_message(cid, other_id)
    assert store.apply_messages(cid, [row], generation) is False
    assert store.state_of(cid) == LoadState.STALE
    assert store.messages(cid) == [row]


def test_released_conversation_drops_late_results(store, other_id):
    cid = uuid.uuid4()
    generation = store.generation(cid)
    store.begin_loading(cid)
    store.release(cid)

    assert store.apply_messages(cid, [make_message(cid, other_id)], generation) is False
    assert store.messages(cid) == []
    assert store.state_of(cid) == LoadState.UNLOADED


def test_read_flag_never_regresses_on_refetch(store, other_id):
    cid = uuid.uuid4()
    row = make_message(cid, other_id)
    _load(store, cid, [row])

    assert store.mark_read(cid, [row.id]) == [row.id]
    assert store.mark_read(cid, [row.id]) == []

    _load(store, cid, [row])
    assert store.messages(cid)[0].read is True


def test_add_message_is_idempotent(store, other_id):
    cid = uuid.uuid4()
    row = make_message(cid, other_id)
    _load(store, cid, [])

    assert store.add_message(row) is True
    assert store.add_message(row) is False
    assert len(store.messages(cid)) == 1


def test_unread_incoming_excludes_own_and_read_messages(store, user_id, other_id):
    cid = uuid.uuid4()
    mine = make_message(cid, user_id)
    theirs = make_message(cid, other_id)
    seen = make_message(cid, other_id, read=True)
    _load(store, cid, [mine, theirs, seen])

    assert [m.id for m in store.unread_incoming(cid)] == [theirs.id]


def test_conversations_sorted_by_last_message_time(store, user_id):
    newest = make_conversation(user_id, last_message_time=T0 + timedelta(hours=2))
    older = make_conversation(user_id, last_message_time=T0 + timedelta(hours=1))
    empty = make_conversation(user_id, created_at=T0 + timedelta(days=1))

    store.apply_conversations([empty, older, newest], {}, store.conversations_generation)

    assert [c.id for c in store.conversations()] == [newest.id, older.id, empty.id]


def test_touch_conversation_moves_it_to_the_top(store, user_id, other_id):
    first = make_conversation(user_id, other_id, last_message_time=T0 + timedelta(hours=2))
    second = make_conversation(user_id, other_id, last_message_time=T0 + timedelta(hours=1))
    store.apply_conversations([first, second], {}, store.conversations_generation)

    message = make_message(second.id, other_id, created_at=T0 + timedelta(hours=3))
    updated = store.touch_conversation(message)

    assert updated is not None
    assert updated.last_message.id == message.id
    assert [c.id for c in store.conversations()] == [second.id, first.id]


def test_conversation_list_invalidated_during_load_is_stale(store, user_id):
    generation = store.conversations_generation
    store.begin_conversations_load()
    store.invalidate_conversations()

    assert store.apply_conversations([make_conversation(user_id)], {}, generation) is False
    assert store.conversations_state == LoadState.STALE


def test_unread_counter_never_goes_negative(store):
    cid = uuid.uuid4()
    store.set_unread_count(cid, 2)

    assert store.decrement_unread(cid, 5) == 0
    assert store.total_unread == 0


def test_decrement_without_counter_creates_none(store):
    order_id = uuid.uuid4()

    assert store.decrement_unread(order_id, 2) == 0
    assert store.unread_by_conversation() == {}


def test_unread_totals_only_count_current_user(store, other_id):
    a, b = uuid.uuid4(), uuid.uuid4()
    store.set_unread_count(a, 3)
    store.set_unread_count(b, 1)
    store.set_unread_count(a, 7, user_id=other_id)

    assert store.unread_by_conversation() == {a: 3, b: 1}
    assert store.total_unread == 4
    assert len(store.unread_counters()) == 3


def test_typing_flags_report_changes(store, other_id):
    cid = uuid.uuid4()
    assert store.set_typing(cid, other_id, True) is True
    assert store.set_typing(cid, other_id, True) is False
    assert store.is_typing(cid, other_id) is True

    store.release(cid)
    assert store.typing(cid) == {}
