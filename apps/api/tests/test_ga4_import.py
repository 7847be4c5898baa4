from datetime import datetime, timezone

from qcsat.db.enums import InboundEventStatus, IntegrationType
from qcsat.db.models import CsatResponse, InboundEvent
from qcsat.schemas.events import GA4ImportRequest, GA4MappingConfig
from qcsat.services.ga4_import_service import (
    default_mapping_config,
    import_ga4_events,
    parse_bigquery_export,
    parse_ga4_timestamp,
)


def _rating_event(pseudo_id="pseudo-1", rating=4, timestamp="1700000000000000"):
    return {
        "event_name": "satisfaction_rating",
        "event_timestamp": timestamp,
        "user_pseudo_id": pseudo_id,
        "event_params": [{"key": "rating", "value": {"int_value": rating}}],
    }


def test_import_batch_is_resilient(db, make_integration, test_project):
    integration = make_integration(IntegrationType.GA4)
    events = [
        _rating_event(),
        {"event_name": "page_view"},  # no timestamp: skipped
        {"event_name": "page_view", "event_timestamp": "1"},  # no user_pseudo_id: error
        _rating_event(),  # replay of index 0
        {
            "event_name": "page_view",
            "event_timestamp": "1700000000000001",
            "user_pseudo_id": "pseudo-2",
        },
        "not-an-object",
    ]

    result = import_ga4_events(
        db,
        GA4ImportRequest(
            integration_id=integration.id,
            project_id=test_project.id,
            events=events,
            mapping_config=default_mapping_config(),
        ),
    )

    assert result.processed == 3
    assert result.skipped == 2
    assert result.csat_responses_created == 1
    assert [e.index for e in result.errors] == [2]
    assert "user_pseudo_id" in result.errors[0].error

    assert db.query(InboundEvent).count() == 2
    assert db.query(CsatResponse).count() == 1

    page_view = db.query(InboundEvent).filter(InboundEvent.normalized_score.is_(None)).one()
    assert page_view.status == InboundEventStatus.RECEIVED.value


def test_import_applies_mapping(db, make_integration, test_project):
    integration = make_integration(IntegrationType.GA4)
    mapping = GA4MappingConfig.model_validate(
        {
            "eventToMoment": {"satisfaction_rating": "checkout"},
            "scoreExtraction": {
                "eventName": "satisfaction_rating",
                "paramKey": "rating",
                "scale": {"min": 0, "max": 10},
            },
        }
    )

    result = import_ga4_events(
        db,
        GA4ImportRequest(
            integration_id=integration.id,
            project_id=test_project.id,
            events=[_rating_event(rating=10)],
            mapping_config=mapping,
        ),
    )

    assert result.csat_responses_created == 1
    response = db.query(CsatResponse).one()
    assert response.score == 5
    assert response.moment_id == "checkout"
    assert response.project_id == test_project.id
    assert response.response_metadata["eventName"] == "satisfaction_rating"


def test_import_without_mapping_stores_unscored_events(db, make_integration, test_project):
    integration = make_integration(IntegrationType.GA4)

    result = import_ga4_events(
        db,
        GA4ImportRequest(
            integration_id=integration.id,
            project_id=test_project.id,
            events=[_rating_event()],
        ),
    )

    assert result.processed == 1
    assert result.csat_responses_created == 0
    assert db.query(CsatResponse).count() == 0


def test_parse_bigquery_export_keeps_event_columns():
    rows = [
        {
            "event_name": "satisfaction_rating",
            "event_timestamp": 1700000000000000,
            "user_pseudo_id": "p",
            "event_params": None,
            "stream_id": "123",
        }
    ]

    events = parse_bigquery_export(rows)

    assert events[0]["event_params"] == []
    assert events[0]["user_properties"] == []
    assert "stream_id" not in events[0]
    assert events[0]["event_timestamp"] == 1700000000000000


def test_parse_ga4_timestamp_micros():
    assert parse_ga4_timestamp("1700000000000000") == datetime(
        2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc
    )
    assert parse_ga4_timestamp(1700000000500000).microsecond == 500000
