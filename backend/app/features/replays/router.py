"""HTTP routes for replay upload, fingerprint checks and the catalog."""

from dataclasses import replace
from typing import List, Optional, Union

import structlog
from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile, status
from fastapi.responses import JSONResponse

from app.core.exceptions import ReplayNotFoundError, ServiceException
from app.core.logging import upload_context

from .dependencies import ReplayCriteriaDep, ReplayServiceDep
from .fingerprints import FingerprintVersion
from .schemas import (
    ExistsResponse,
    MassCheckResponse,
    PagedReplaysResponse,
    ReplayResponse,
    UploadResponse,
)
from .service import ReplayStatus, UploadedReplay, parse_fingerprint_list
from .transformers import ReplayTransformer

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["replays"])

NO_FILE_RESPONSE = {"success": False, "Error": "no file specified"}


@router.post(
    "/upload", response_model=UploadResponse, response_model_exclude_none=True
)
async def upload_replay(
    service: ReplayServiceDep,
    file: Optional[UploadFile] = File(None),
    uploadToHotslogs: bool = False,
    upload_to_hotslogs_form: bool = Form(False, alias="uploadToHotslogs"),
) -> Union[UploadResponse, JSONResponse]:
    """Upload a replay file.

    ``uploadToHotslogs`` is honoured from the query string or the form body.
    """
    if file is None:
        return JSONResponse(NO_FILE_RESPONSE)

    upload = UploadedReplay(filename=file.filename, content=await file.read())
    with upload_context(file.filename):
        try:
            result = await service.ingest(
                upload, upload_to_relay=uploadToHotslogs or upload_to_hotslogs_form
            )
        except ServiceException as e:
            logger.error(
                "replay_upload_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return JSONResponse(
                {"success": False, "Error": "internal storage error"},
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

    if result.status == ReplayStatus.NO_FILE:
        return JSONResponse(NO_FILE_RESPONSE)

    response = UploadResponse(
        success=True, status=result.status.value, originalName=file.filename
    )
    if result.replay is not None:
        response.filename = result.replay.filename
        response.url = result.replay.url
        response.id = result.replay.id
    return response


@router.get("/replays", response_model=List[ReplayResponse])
async def list_replays(
    criteria: ReplayCriteriaDep, service: ReplayServiceDep
) -> List[ReplayResponse]:
    """First page of replays matching the filters, ordered by id."""
    replays = await service.list_replays(criteria)
    return [ReplayTransformer.orm_to_response(r) for r in replays]


@router.get("/replays/paged", response_model=PagedReplaysResponse)
async def list_replays_paged(
    criteria: ReplayCriteriaDep, service: ReplayServiceDep, page: int = 1
) -> PagedReplaysResponse:
    """Replays matching the filters with page metadata (no totals)."""
    result = await service.list_replays_paged(replace(criteria, page=page))
    return PagedReplaysResponse(
        per_page=result.per_page,
        page=result.page,
        replays=[ReplayTransformer.orm_to_response(r) for r in result.replays],
    )


@router.get("/replays/min-build", response_model=int)
async def minimum_build(service: ReplayServiceDep) -> int:
    """Minimum supported game build."""
    return service.minimum_build()


@router.post("/replays/fingerprints", response_model=MassCheckResponse)
async def mass_check(request: Request, service: ReplayServiceDep) -> MassCheckResponse:
    """Check a newline-delimited list of canonical fingerprints."""
    body = (await request.body()).decode("utf-8", errors="replace")
    result = await service.exists_many(parse_fingerprint_list(body))
    return MassCheckResponse(exists=result.exists, absent=result.absent)


@router.get("/replays/fingerprints/v3/{fingerprint}", response_model=ExistsResponse)
async def check_v3(
    fingerprint: str, service: ReplayServiceDep, uploadToHotslogs: bool = False
) -> ExistsResponse:
    """Check whether a replay with the given fingerprint is already uploaded."""
    exists = await service.exists_single(
        fingerprint, FingerprintVersion.V3, upload_to_relay=uploadToHotslogs
    )
    return ExistsResponse(exists=exists)


@router.get("/replays/fingerprints/v2/{fingerprint}", response_model=ExistsResponse)
async def check_v2(
    fingerprint: str, service: ReplayServiceDep, uploadToHotslogs: bool = False
) -> ExistsResponse:
    """Same as v3 for clients that send the byte-swapped format."""
    exists = await service.exists_single(
        fingerprint, FingerprintVersion.V2, upload_to_relay=uploadToHotslogs
    )
    return ExistsResponse(exists=exists)


@router.get("/replays/fingerprints/v1/{fingerprint}", response_model=ExistsResponse)
async def check_v1(fingerprint: str, service: ReplayServiceDep) -> ExistsResponse:
    """Old fingerprint version, retained for compatibility."""
    exists = await service.exists_single(fingerprint, FingerprintVersion.V1)
    return ExistsResponse(exists=exists)


@router.get("/replays/{replay_id}", response_model=ReplayResponse)
async def show_replay(replay_id: int, service: ReplayServiceDep) -> ReplayResponse:
    """Full replay detail including map, bans and players."""
    try:
        replay = await service.get_replay(replay_id)
    except ReplayNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Replay not found"
        )
    return ReplayTransformer.orm_to_response(replay)
