import threading
from unittest import mock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from vendrefacile.core.errors import Forbidden, InvalidInput, InvalidOperation, NotFound, StorageError
from vendrefacile.db.database import Base, enable_sqlite_foreign_keys
from vendrefacile.db.storage import StorageGateway
from vendrefacile.models.conversation import Conversation, Message
from vendrefacile.models.listing import Listing
from vendrefacile.models.user import User
from vendrefacile.services.conversation_broker import ConversationBroker


@pytest.fixture
def marketplace(make_user, make_listing):
    seller = make_user("seller")
    buyer = make_user("buyer")
    outsider = make_user("outsider")
    listing = make_listing(seller, "iPhone 12", price=350, city="Paris")
    return {"seller": seller, "buyer": buyer, "outsider": outsider, "listing": listing}


def test_open_conversation_creates_thread_with_listing_owner(storage, marketplace):
    result = ConversationBroker(storage).open_conversation(marketplace["listing"].id, marketplace["buyer"].id)

    assert result.created is True
    assert result.conversation.buyer_id == marketplace["buyer"].id
    assert result.conversation.seller_id == marketplace["seller"].id
    assert result.conversation.listing_id == marketplace["listing"].id


def test_open_conversation_twice_returns_same_row(db_session, storage, marketplace):
    broker = ConversationBroker(storage)
    first = broker.open_conversation(marketplace["listing"].id, marketplace["buyer"].id)
    second = broker.open_conversation(marketplace["listing"].id, marketplace["buyer"].id)

    assert second.created is False
    assert second.conversation.id == first.conversation.id
    assert db_session.query(Conversation).count() == 1


def test_existing_row_from_another_request_is_reused(db_session, storage, marketplace):
    """Loser of a race: the row is already committed when this request inserts."""
    existing = Conversation(
        listing_id=marketplace["listing"].id,
        buyer_id=marketplace["buyer"].id,
        seller_id=marketplace["seller"].id,
    )
    db_session.add(existing)
    db_session.commit()

    result = ConversationBroker(storage).open_conversation(marketplace["listing"].id, marketplace["buyer"].id)

    assert result.created is False
    assert result.conversation.id == existing.id


def test_different_buyers_get_different_threads(storage, marketplace):
    broker = ConversationBroker(storage)
    a = broker.open_conversation(marketplace["listing"].id, marketplace["buyer"].id)
    b = broker.open_conversation(marketplace["listing"].id, marketplace["outsider"].id)

    assert a.created and b.created
    assert a.conversation.id != b.conversation.id


def test_missing_listing_raises_not_found(storage, marketplace):
    with pytest.raises(NotFound):
        ConversationBroker(storage).open_conversation(9999, marketplace["buyer"].id)


def test_owner_cannot_open_conversation_on_own_listing(db_session, storage, marketplace, make_listing):
    broker = ConversationBroker(storage)
    second_listing = make_listing(marketplace["buyer"], "Vélo")

    for listing, owner in ((marketplace["listing"], marketplace["seller"]), (second_listing, marketplace["buyer"])):
        with pytest.raises(InvalidOperation):
            broker.open_conversation(listing.id, owner.id)

    assert db_session.query(Conversation).count() == 0


def test_other_integrity_failure_is_a_storage_error(db_session, storage, marketplace):
    failure = IntegrityError("INSERT INTO conversations", {}, Exception("FOREIGN KEY constraint failed"))

    with mock.patch.object(db_session, "commit", side_effect=failure):
        with pytest.raises(StorageError):
            ConversationBroker(storage).open_conversation(marketplace["listing"].id, marketplace["buyer"].id)

    assert db_session.query(Conversation).count() == 0


def test_owner_is_resolved_from_primary_not_replica(db_session, marketplace):
    """A replica that has not seen the listing yet must not make it look missing."""
    lagging_replica = mock.Mock()
    storage = StorageGateway(db_session, lagging_replica)

    result = ConversationBroker(storage).open_conversation(marketplace["listing"].id, marketplace["buyer"].id)

    assert result.created is True
    lagging_replica.query.assert_not_called()


def test_list_conversations_names_the_other_participant(storage, marketplace, make_listing):
    broker = ConversationBroker(storage)
    broker.open_conversation(marketplace["listing"].id, marketplace["buyer"].id)
    # The buyer also sells something the seller is interested in
    buyer_listing = make_listing(marketplace["buyer"], "Vélo de ville")
    broker.open_conversation(buyer_listing.id, marketplace["seller"].id)

    seller_view = {row["listing_title"]: row["other_user"] for row in broker.list_conversations(marketplace["seller"].id)}
    buyer_view = {row["listing_title"]: row["other_user"] for row in broker.list_conversations(marketplace["buyer"].id)}

    assert seller_view == {"iPhone 12": "buyer", "Vélo de ville": "buyer"}
    assert buyer_view == {"iPhone 12": "seller", "Vélo de ville": "seller"}
    assert broker.list_conversations(marketplace["outsider"].id) == []


def test_list_conversations_newest_first(storage, marketplace, make_listing):
    broker = ConversationBroker(storage)
    first = broker.open_conversation(marketplace["listing"].id, marketplace["buyer"].id)
    other_listing = make_listing(marketplace["seller"], "Clio")
    second = broker.open_conversation(other_listing.id, marketplace["buyer"].id)

    ids = [row["id"] for row in broker.list_conversations(marketplace["buyer"].id)]
    assert ids == [second.conversation.id, first.conversation.id]


def test_messages_are_returned_oldest_first_with_sender_name(storage, marketplace):
    broker = ConversationBroker(storage)
    conversation = broker.open_conversation(marketplace["listing"].id, marketplace["buyer"].id).conversation

    broker.send_message(conversation.id, marketplace["buyer"].id, "Bonjour, toujours disponible ?")
    broker.send_message(conversation.id, marketplace["seller"].id, "Oui, disponible.")

    messages = broker.list_messages(conversation.id, marketplace["seller"].id)
    assert [(m["sender_name"], m["content"]) for m in messages] == [
        ("buyer", "Bonjour, toujours disponible ?"),
        ("seller", "Oui, disponible."),
    ]
    assert all(m["read"] is False for m in messages)


def test_non_participant_gets_same_error_as_missing_conversation(storage, marketplace):
    broker = ConversationBroker(storage)
    conversation = broker.open_conversation(marketplace["listing"].id, marketplace["buyer"].id).conversation
    outsider_id = marketplace["outsider"].id

    with pytest.raises(Forbidden) as foreign:
        broker.list_messages(conversation.id, outsider_id)
    with pytest.raises(Forbidden) as missing:
        broker.list_messages(9999, outsider_id)
    assert foreign.value.status_code == missing.value.status_code
    assert foreign.value.detail == missing.value.detail

    with pytest.raises(Forbidden):
        broker.send_message(conversation.id, outsider_id, "Hello")
    with pytest.raises(Forbidden):
        broker.send_message(9999, outsider_id, "Hello")


def test_empty_message_is_rejected(db_session, storage, marketplace):
    broker = ConversationBroker(storage)
    conversation = broker.open_conversation(marketplace["listing"].id, marketplace["buyer"].id).conversation

    for content in ("", "   "):
        with pytest.raises(InvalidInput):
            broker.send_message(conversation.id, marketplace["buyer"].id, content)
    assert db_session.query(Message).count() == 0


@pytest.fixture
def file_engine(tmp_path):
    """File-backed database so each thread can use its own connection."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
        poolclass=NullPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


def test_concurrent_open_conversation_yields_single_row(file_engine):
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=file_engine)

    setup = SessionLocal()
    seller = User(email="seller@example.com", password_hash="x", username="seller")
    buyer = User(email="buyer@example.com", password_hash="x", username="buyer")
    setup.add_all([seller, buyer])
    setup.flush()
    listing = Listing(title="iPhone 12", owner_id=seller.id)
    setup.add(listing)
    setup.commit()
    listing_id, buyer_id = listing.id, buyer.id
    setup.close()

    workers = 8
    barrier = threading.Barrier(workers)
    results, errors = [], []
    lock = threading.Lock()

    def open_from_new_request():
        db = SessionLocal()
        try:
            barrier.wait()
            result = ConversationBroker(StorageGateway(db)).open_conversation(listing_id, buyer_id)
            with lock:
                results.append((result.conversation.id, result.created))
        except Exception as e:
            with lock:
                errors.append(e)
        finally:
            db.close()

    threads = [threading.Thread(target=open_from_new_request) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert len(results) == workers
    assert len({conversation_id for conversation_id, _ in results}) == 1
    assert sum(1 for _, created in results if created) == 1

    check = SessionLocal()
    try:
        assert check.query(Conversation).count() == 1
    finally:
        check.close()
