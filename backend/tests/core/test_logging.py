import structlog

from app.core.logging import SERVICE_NAME, _add_service_name, upload_context


def test_service_name_is_added_to_events():
    event = _add_service_name(None, "info", {"event": "replay_ingested"})

    assert event["service"] == SERVICE_NAME


def test_upload_context_is_bound_only_inside_block():
    with upload_context("match.StormReplay"):
        assert structlog.contextvars.get_contextvars() == {
            "original_name": "match.StormReplay"
        }

    assert "original_name" not in structlog.contextvars.get_contextvars()
