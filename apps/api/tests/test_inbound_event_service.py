import pytest

from qcsat.db.enums import InboundEventStatus, InboundSourceType, IntegrationType
from qcsat.db.models import CsatResponse, InboundEvent
from qcsat.schemas.events import NormalizedEvent
from qcsat.services import inbound_event_service


def _event(external_id="ticket-1", score=5, **overrides) -> NormalizedEvent:
    data = {
        "source_type": InboundSourceType.ZENDESK_SATISFACTION,
        "external_id": external_id,
        "normalized_score": score,
        "payload": {"ticket": {"id": external_id}},
        "metadata": {"ticketId": external_id},
    }
    data.update(overrides)
    return NormalizedEvent(**data)


@pytest.fixture
def integration(make_integration):
    return make_integration(IntegrationType.ZENDESK)


def _materialize(db, integration, project, event):
    return inbound_event_service.materialize_event(
        db, integration_id=integration.id, project_id=project.id, event=event
    )


def test_materialize_creates_event_and_response(db, integration, test_project):
    result = _materialize(db, integration, test_project, _event(moment_id="support"))

    assert result.created
    event = inbound_event_service.get_inbound_event(db, result.event_id)
    assert event.status == InboundEventStatus.PROCESSED.value
    assert event.processed_at is not None
    assert event.payload == {"ticket": {"id": "ticket-1"}}

    response = db.query(CsatResponse).one()
    assert response.id == result.csat_response_id
    assert response.score == 5
    assert response.moment_id == "support"
    assert response.inbound_event_id == event.id
    assert response.external_reference == "ticket-1"
    assert response.response_metadata == {"ticketId": "ticket-1"}


def test_materialize_is_idempotent(db, integration, test_project):
    first = _materialize(db, integration, test_project, _event())
    second = _materialize(db, integration, test_project, _event(score=1))

    assert not second.created
    assert second.event_id == first.event_id
    assert second.csat_response_id == first.csat_response_id
    assert db.query(InboundEvent).count() == 1
    assert db.query(CsatResponse).count() == 1
    assert db.query(CsatResponse).one().score == 5


def test_same_external_id_on_other_integration_is_distinct(db, make_integration, test_project):
    a = make_integration(IntegrationType.ZENDESK)
    b = make_integration(IntegrationType.ZENDESK)

    assert _materialize(db, a, test_project, _event()).created
    assert _materialize(db, b, test_project, _event()).created
    assert db.query(CsatResponse).count() == 2


def test_materialize_without_score_leaves_event_received(db, integration, test_project):
    result = _materialize(db, integration, test_project, _event(score=None))

    assert result.created
    assert result.csat_response_id is None
    event = inbound_event_service.get_inbound_event(db, result.event_id)
    assert event.status == InboundEventStatus.RECEIVED.value
    assert event.processed_at is None


def test_concurrent_insert_returns_existing_row(db, integration, test_project, monkeypatch):
    first = _materialize(db, integration, test_project, _event())

    # Simulate a racing worker: the fast-path lookup misses once, so the
    # insert hits the unique constraint.
    real_find = inbound_event_service.find_by_external_id
    calls = {"n": 0}

    def racing_find(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            return None
        return real_find(*args, **kwargs)

    monkeypatch.setattr(inbound_event_service, "find_by_external_id", racing_find)

    second = _materialize(db, integration, test_project, _event())

    assert not second.created
    assert second.event_id == first.event_id
    assert second.csat_response_id == first.csat_response_id
    assert db.query(InboundEvent).count() == 1
    assert db.query(CsatResponse).count() == 1


def test_status_transitions_are_monotonic(db, integration, test_project):
    result = _materialize(db, integration, test_project, _event(score=None))
    event = inbound_event_service.get_inbound_event(db, result.event_id)

    assert inbound_event_service.mark_event_failed(db, event, "boom")
    assert event.status == InboundEventStatus.FAILED.value
    assert event.error_message == "boom"

    assert not inbound_event_service.mark_event_processed(db, event)
    assert not inbound_event_service.mark_event_failed(db, event, "again")
    assert event.status == InboundEventStatus.FAILED.value
    assert event.error_message == "boom"


def test_mark_processed_from_received(db, integration, test_project):
    result = _materialize(db, integration, test_project, _event(score=None))
    event = inbound_event_service.get_inbound_event(db, result.event_id)

    assert inbound_event_service.mark_event_processed(db, event)
    assert event.status == InboundEventStatus.PROCESSED.value
    assert event.processed_at is not None


def test_materialize_pending_event_with_late_score(db, integration, test_project):
    result = _materialize(db, integration, test_project, _event(score=None))

    pending = inbound_event_service.materialize_pending_event(db, result.event_id, score=2)

    assert pending.created
    response = db.query(CsatResponse).one()
    assert response.score == 2
    assert response.response_metadata == {"ticket": {"id": "ticket-1"}}
    event = inbound_event_service.get_inbound_event(db, result.event_id)
    assert event.status == InboundEventStatus.PROCESSED.value
    assert event.normalized_score == 2

    again = inbound_event_service.materialize_pending_event(db, result.event_id, score=4)
    assert not again.created
    assert again.csat_response_id == response.id
    assert db.query(CsatResponse).count() == 1


def test_materialize_pending_event_errors(db, integration, test_project):
    import uuid

    with pytest.raises(LookupError):
        inbound_event_service.materialize_pending_event(db, uuid.uuid4())

    result = _materialize(db, integration, test_project, _event(score=None))
    with pytest.raises(ValueError):
        inbound_event_service.materialize_pending_event(db, result.event_id)


def test_list_inbound_events_filters_by_status(db, integration, test_project):
    _materialize(db, integration, test_project, _event("a"))
    _materialize(db, integration, test_project, _event("b", score=None))

    assert len(inbound_event_service.list_inbound_events(db, integration.id)) == 2
    received = inbound_event_service.list_inbound_events(
        db, integration.id, status=InboundEventStatus.RECEIVED
    )
    assert [e.external_id for e in received] == ["b"]
