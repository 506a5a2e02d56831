import logging
from pathlib import Path

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from march import crud
from march.capture_pipeline.fingerprint import md5sum
from march.core.config import Archive
from march.models import ArchiveItem

logger = logging.getLogger(__name__)


def store_capture(
    *,
    session: Session,
    archive: Archive,
    item_id: str,
    url: str,
    captured: Path,
) -> ArchiveItem:
    """
    Fingerprint a freshly captured file and record it under ``item_id``.

    When the archive already holds the same bytes the new file is deleted and
    the item points at the existing file. Otherwise ``item_id`` becomes the
    owner of the file.
    """
    fingerprint = md5sum(captured)

    file_id = crud.get_file_id_by_fingerprint(
        session=session, archive=archive.name, fingerprint=fingerprint
    )
    if file_id is None:
        try:
            return crud.create_archive_item(
                session=session,
                item_id=item_id,
                file_id=item_id,
                archive=archive.name,
                url=url,
                fingerprint=fingerprint,
            )
        except IntegrityError:
            # 并发捕获了相同内容，另一个任务先插入了拥有文件的行
            session.rollback()
            file_id = crud.get_file_id_by_fingerprint(
                session=session, archive=archive.name, fingerprint=fingerprint
            )
            if file_id is None:
                raise
            logger.info(f"{item_id}: concurrent capture of {fingerprint} won, linking to {file_id}")

    logger.info(f"{item_id}: duplicate of {file_id} ({fingerprint}), removing {captured}")
    captured.unlink(missing_ok=True)

    return crud.create_archive_item(
        session=session,
        item_id=item_id,
        file_id=file_id,
        archive=archive.name,
        url=url,
        fingerprint=fingerprint,
    )
