from collections.abc import Generator
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from sqlmodel import Session

from march.core.config import Archive, Registry
from march.core.security import is_authorized
from march.worker_tasks.ingest import IngestionEngine

UNAUTHORIZED = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Unauthorized",
    headers={"WWW-Authenticate": 'Basic realm="Restricted"'},
)


def get_db(request: Request) -> Generator[Session, None, None]:
    with Session(request.app.state.engine) as session:
        yield session


def get_registry(request: Request) -> Registry:
    return request.app.state.registry


def get_ingestion(request: Request) -> IngestionEngine:
    return request.app.state.ingestion


SessionDep = Annotated[Session, Depends(get_db)]
RegistryDep = Annotated[Registry, Depends(get_registry)]
IngestionDep = Annotated[IngestionEngine, Depends(get_ingestion)]


def get_authorized_archive(request: Request, registry: RegistryDep) -> Archive:
    # 不区分归档不存在和凭据错误，统一返回 401
    archive = registry.get_archive(request.path_params.get("archive_name", ""))
    if not is_authorized(request.headers.get("Authorization"), archive):
        raise UNAUTHORIZED
    return archive  # type: ignore[return-value]


AuthorizedArchiveDep = Annotated[Archive, Depends(get_authorized_archive)]
