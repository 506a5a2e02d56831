import logging
import uuid
from collections.abc import Iterator
from typing import Any, BinaryIO

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request, status
from fastapi.responses import PlainTextResponse, StreamingResponse

from march.api.deps import (
    UNAUTHORIZED,
    AuthorizedArchiveDep,
    IngestionDep,
    RegistryDep,
    SessionDep,
)
from march.capture_pipeline import Outcome, resolve_path

router = APIRouter(tags=["archive"])
logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def iter_file(f: BinaryIO) -> Iterator[bytes]:
    with f:
        while chunk := f.read(CHUNK_SIZE):
            yield chunk


@router.post("/", include_in_schema=False)
def submit_without_archive() -> Any:
    raise UNAUTHORIZED


@router.post("/{archive_name}", response_class=PlainTextResponse)
@router.post("/{archive_name}/{rest:path}", response_class=PlainTextResponse, include_in_schema=False)
async def submit_url(
    request: Request,
    archive: AuthorizedArchiveDep,
    ingestion: IngestionDep,
    background_tasks: BackgroundTasks,
) -> Any:
    """
    Accept a URL for archiving and return the id it will be stored under.

    Capture runs after the response is sent; whether it succeeded is only
    visible by retrieving the id later.
    """
    try:
        form = await request.form()
    except Exception as e:
        logger.info(f"Unparsable submission body for {archive.name}: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Bad Request")

    url = form.get("url")
    if not isinstance(url, str) or not url.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Bad Request")

    item_id = str(uuid.uuid4())
    background_tasks.add_task(ingestion.ingest, archive, url, item_id)

    return PlainTextResponse(f"{item_id}\n")


@router.get("/{item_path:path}")
def get_archived_item(
    item_path: str,
    session: SessionDep,
    registry: RegistryDep,
) -> Any:
    """
    Stream the captured bytes of ``<archive>/<id>``. Not authenticated.
    """
    resolution = resolve_path(session=session, registry=registry, path=item_path)

    if resolution.outcome is Outcome.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
    if resolution.outcome is Outcome.NO_CONTENT:
        raise HTTPException(status_code=status.HTTP_204_NO_CONTENT, detail="No Content")

    return StreamingResponse(iter_file(resolution.file), media_type="application/octet-stream")
