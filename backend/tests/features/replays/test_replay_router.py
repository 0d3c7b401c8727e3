from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from app.core.exceptions import DatabaseError, ReplayNotFoundError, StorageError
from app.features.replays.dependencies import get_replay_service
from app.features.replays.fingerprints import FingerprintVersion
from app.features.replays.gateway import MIN_SUPPORTED_BUILD
from app.features.replays.orm_models import ReplayORM
from app.features.replays.queries import PAGE_SIZE
from app.features.replays.service import (
    IngestResult,
    MassCheckResult,
    ReplayPage,
    ReplayService,
    ReplayStatus,
)
from app.main import app


@pytest.fixture
def mock_service():
    service = AsyncMock(spec=ReplayService)
    service.minimum_build = MagicMock(return_value=MIN_SUPPORTED_BUILD)
    return service


@pytest.fixture
def client(mock_service):
    app.dependency_overrides[get_replay_service] = lambda: mock_service
    yield TestClient(app)
    app.dependency_overrides.clear()


def stored_replay(replay_id=1):
    return ReplayORM(
        id=replay_id,
        fingerprint="fp-1",
        filename=f"{replay_id}.StormReplay",
        url=f"http://files/{replay_id}.StormReplay",
        size=10,
        game_type="QuickMatch",
        game_date=datetime(2018, 5, 1, tzinfo=timezone.utc),
        build=70000,
    )


# ============================================================================
# Upload
# ============================================================================


def test_upload_without_file(client, mock_service):
    response = client.post("/api/v1/upload")

    assert response.status_code == 200
    assert response.json() == {"success": False, "Error": "no file specified"}
    mock_service.ingest.assert_not_called()


def test_upload_success(client, mock_service):
    mock_service.ingest.return_value = IngestResult(
        ReplayStatus.SUCCESS, stored_replay()
    )

    response = client.post(
        "/api/v1/upload",
        files={"file": ("match.StormReplay", b"replay-bytes")},
    )

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "status": "Success",
        "originalName": "match.StormReplay",
        "filename": "1.StormReplay",
        "url": "http://files/1.StormReplay",
        "id": 1,
    }
    upload = mock_service.ingest.call_args.args[0]
    assert upload.content == b"replay-bytes"
    assert mock_service.ingest.call_args.kwargs == {"upload_to_relay": False}


def test_upload_passes_relay_flag(client, mock_service):
    mock_service.ingest.return_value = IngestResult(
        ReplayStatus.DUPLICATE, stored_replay()
    )

    response = client.post(
        "/api/v1/upload?uploadToHotslogs=true",
        files={"file": ("match.StormReplay", b"replay-bytes")},
    )

    assert response.json()["status"] == "Duplicate"
    assert mock_service.ingest.call_args.kwargs == {"upload_to_relay": True}


def test_upload_reads_relay_flag_from_form(client, mock_service):
    mock_service.ingest.return_value = IngestResult(
        ReplayStatus.SUCCESS, stored_replay()
    )

    response = client.post(
        "/api/v1/upload",
        data={"uploadToHotslogs": "true"},
        files={"file": ("match.StormReplay", b"replay-bytes")},
    )

    assert response.status_code == 200
    assert mock_service.ingest.call_args.kwargs == {"upload_to_relay": True}


def test_upload_unreadable_file(client, mock_service):
    mock_service.ingest.return_value = IngestResult(ReplayStatus.UPLOAD_ERROR)

    response = client.post(
        "/api/v1/upload", files={"file": ("bad.StormReplay", b"garbage")}
    )

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "status": "UploadError",
        "originalName": "bad.StormReplay",
    }


def test_upload_empty_file(client, mock_service):
    mock_service.ingest.return_value = IngestResult(ReplayStatus.NO_FILE)

    response = client.post(
        "/api/v1/upload", files={"file": ("empty.StormReplay", b"")}
    )

    assert response.json() == {"success": False, "Error": "no file specified"}


def test_upload_storage_failure(client, mock_service):
    mock_service.ingest.side_effect = DatabaseError("connection lost")

    response = client.post(
        "/api/v1/upload", files={"file": ("match.StormReplay", b"replay-bytes")}
    )

    assert response.status_code == 500
    assert response.json() == {"success": False, "Error": "internal storage error"}


def test_upload_file_storage_failure(client, mock_service):
    mock_service.ingest.side_effect = StorageError("disk full", operation="save")

    response = client.post(
        "/api/v1/upload", files={"file": ("match.StormReplay", b"replay-bytes")}
    )

    assert response.status_code == 500
    assert response.json() == {"success": False, "Error": "internal storage error"}


# ============================================================================
# Fingerprint checks
# ============================================================================


@pytest.mark.parametrize(
    "version", [FingerprintVersion.V3, FingerprintVersion.V2]
)
def test_check_fingerprint(client, mock_service, version):
    mock_service.exists_single.return_value = True

    response = client.get(
        f"/api/v1/replays/fingerprints/{version.value}/abc-def?uploadToHotslogs=true"
    )

    assert response.status_code == 200
    assert response.json() == {"exists": True}
    mock_service.exists_single.assert_called_once_with(
        "abc-def", version, upload_to_relay=True
    )


def test_check_fingerprint_v1(client, mock_service):
    mock_service.exists_single.return_value = False

    response = client.get("/api/v1/replays/fingerprints/v1/legacy")

    assert response.json() == {"exists": False}
    mock_service.exists_single.assert_called_once_with(
        "legacy", FingerprintVersion.V1
    )


def test_mass_check(client, mock_service):
    mock_service.exists_many.return_value = MassCheckResult(
        exists=["fp2"], absent=["fp1", "fp3"]
    )

    response = client.post(
        "/api/v1/replays/fingerprints",
        content=b"fp1\nfp2\r\nfp3\n",
        headers={"Content-Type": "text/plain"},
    )

    assert response.status_code == 200
    assert response.json() == {"exists": ["fp2"], "absent": ["fp1", "fp3"]}
    mock_service.exists_many.assert_called_once_with(["fp1", "fp2", "fp3"])


def test_minimum_build(client):
    response = client.get("/api/v1/replays/min-build")

    assert response.status_code == 200
    assert response.json() == MIN_SUPPORTED_BUILD


# ============================================================================
# Catalog
# ============================================================================


def test_list_replays_passes_filters(client, mock_service):
    mock_service.list_replays.return_value = [stored_replay(5)]

    response = client.get(
        "/api/v1/replays?game_type=Ranked&min_id=5&player=Foo%23123&with_players=false"
    )

    assert response.status_code == 200
    body = response.json()
    assert [r["id"] for r in body] == [5]
    assert "players" not in body[0] or body[0]["players"] is None
    criteria = mock_service.list_replays.call_args.args[0]
    assert criteria.game_type == "Ranked"
    assert criteria.min_id == 5
    assert criteria.player == "Foo#123"
    assert criteria.with_players is False


def test_list_replays_paged(client, mock_service):
    mock_service.list_replays_paged.return_value = ReplayPage(
        page=2, per_page=PAGE_SIZE, replays=[stored_replay(101)]
    )

    response = client.get("/api/v1/replays/paged?page=2&game_type=Ranked")

    assert response.status_code == 200
    body = response.json()
    assert body["page"] == 2
    assert body["per_page"] == PAGE_SIZE
    assert body["replays"][0]["id"] == 101
    assert "total" not in body
    criteria = mock_service.list_replays_paged.call_args.args[0]
    assert criteria.page == 2
    assert criteria.game_type == "Ranked"


def test_show_replay(client, mock_service):
    mock_service.get_replay.return_value = stored_replay(9)

    response = client.get("/api/v1/replays/9")

    assert response.status_code == 200
    assert response.json()["id"] == 9
    mock_service.get_replay.assert_called_once_with(9)


def test_show_replay_not_found(client, mock_service):
    mock_service.get_replay.side_effect = ReplayNotFoundError(404)

    response = client.get("/api/v1/replays/404")

    assert response.status_code == 404


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
