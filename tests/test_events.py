import json

import pytest
from pika.exceptions import AMQPConnectionError
from sqlalchemy.exc import OperationalError

import lesson_scheduling.services.transaction as transaction_module
from lesson_scheduling.core.config import settings
from lesson_scheduling.core.errors import PersistenceFailure, ValidationFailed
from lesson_scheduling.models import AuditLog
from lesson_scheduling.services import rabbitmq_client
from lesson_scheduling.services.audit import log_action
from lesson_scheduling.services.transaction import UnitOfWork


@pytest.fixture()
def published(monkeypatch):
    sent = []
    monkeypatch.setattr(transaction_module, "publish_lesson_event", lambda t, d: sent.append((t, d)))
    return sent


def test_events_go_out_after_commit(db, published):
    with UnitOfWork(db) as uow:
        log_action(db, user_id="u1", action="something")
        uow.publish("something_happened", {"id": 1})
        assert published == []

    assert published == [("something_happened", {"id": 1})]
    assert db.query(AuditLog).count() == 1


def test_failed_block_rolls_back_and_publishes_nothing(db, published):
    with pytest.raises(ValidationFailed):
        with UnitOfWork(db) as uow:
            log_action(db, user_id="u1", action="something")
            db.flush()
            uow.publish("something_happened", {"id": 1})
            raise ValidationFailed("nope")

    assert published == []
    assert db.query(AuditLog).count() == 0


def test_database_errors_become_persistence_failures(db, published):
    with pytest.raises(PersistenceFailure):
        with UnitOfWork(db):
            raise OperationalError("UPDATE x", {}, Exception("database is locked"))


def test_publish_disabled(monkeypatch):
    monkeypatch.setattr(settings, "EVENTS_ENABLED", False)
    assert rabbitmq_client.publish_lesson_event("lesson_request_created", {"id": "r1"}) is False


def test_publish_failure_is_swallowed(monkeypatch):
    monkeypatch.setattr(settings, "EVENTS_ENABLED", True)

    def _refuse(params):
        raise AMQPConnectionError("connection refused")

    monkeypatch.setattr(rabbitmq_client.pika, "BlockingConnection", _refuse)
    assert rabbitmq_client.publish_lesson_event("lesson_request_created", {"id": "r1"}) is False


def test_publish_sends_persistent_json(monkeypatch):
    monkeypatch.setattr(settings, "EVENTS_ENABLED", True)
    calls = {}

    class _Channel:
        def queue_declare(self, queue, durable):
            calls["queue"] = (queue, durable)

        def basic_publish(self, exchange, routing_key, body, properties):
            calls["publish"] = (routing_key, body, properties.delivery_mode)

    class _Connection:
        def __init__(self, params):
            pass

        def channel(self):
            return _Channel()

        def close(self):
            calls["closed"] = True

    monkeypatch.setattr(rabbitmq_client.pika, "BlockingConnection", _Connection)

    assert rabbitmq_client.publish_lesson_event("ticket_advanced", {"ticket_number": "LR1"}) is True
    assert calls["queue"] == ("lesson_events", True)
    routing_key, body, delivery_mode = calls["publish"]
    assert routing_key == "lesson_events"
    envelope = json.loads(body)
    assert envelope["event_type"] == "ticket_advanced"
    assert envelope["event_data"] == {"ticket_number": "LR1"}
    assert "occurred_at" in envelope
    assert delivery_mode == 2
    assert calls["closed"] is True
