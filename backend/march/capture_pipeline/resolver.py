"""
Retrieval resolver.

Maps ``<archive>/<id>`` to the physical file holding the captured bytes.
A catalogued id whose file has gone missing resolves to NO_CONTENT, which is
never merged with NOT_FOUND.
"""
import enum
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from sqlmodel import Session

from march import crud
from march.core.config import Registry

logger = logging.getLogger(__name__)

UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_uuid(value: str) -> bool:
    return UUID_RE.match(value) is not None


class Outcome(enum.Enum):
    NOT_FOUND = "not_found"
    NO_CONTENT = "no_content"
    FOUND = "found"


@dataclass(frozen=True)
class Resolution:
    outcome: Outcome
    path: Path | None = None
    # 已打开的文件，由调用方负责关闭
    file: BinaryIO | None = None


NOT_FOUND = Resolution(Outcome.NOT_FOUND)
NO_CONTENT = Resolution(Outcome.NO_CONTENT)


def split_item_path(path: str) -> tuple[str, str] | None:
    if path.startswith("/"):
        path = path[1:]
    parts = path.split("/")
    if len(parts) != 2 or not all(parts):
        return None
    return parts[0], parts[1]


def resolve(
    *, session: Session, registry: Registry, archive_name: str, item_id: str
) -> Resolution:
    archive = registry.get_archive(archive_name)
    if archive is None:
        return NOT_FOUND

    if not is_uuid(item_id):
        return NOT_FOUND

    file_id = crud.get_file_id_by_id(session=session, archive=archive.name, item_id=item_id)
    if file_id is None:
        return NOT_FOUND

    file_path = archive.storage / file_id
    try:
        f = open(file_path, "rb")
    except OSError as e:
        logger.warning(f"{archive.name}/{item_id} is catalogued but {file_path} can't be opened: {e}")
        return NO_CONTENT

    return Resolution(Outcome.FOUND, file_path, f)


def resolve_path(*, session: Session, registry: Registry, path: str) -> Resolution:
    parts = split_item_path(path)
    if parts is None:
        return NOT_FOUND
    archive_name, item_id = parts
    return resolve(
        session=session, registry=registry, archive_name=archive_name, item_id=item_id
    )
