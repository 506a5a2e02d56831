from datetime import datetime

from sqlmodel import Session, col, select

from march.models import ArchiveItem


def get_file_id_by_id(*, session: Session, archive: str, item_id: str) -> str | None:
    statement = select(ArchiveItem.file_id).where(
        ArchiveItem.archive == archive,
        ArchiveItem.id == item_id,
        col(ArchiveItem.deleted_at).is_(None),
    )
    return session.exec(statement).first()


def get_file_id_by_fingerprint(
    *, session: Session, archive: str, fingerprint: str
) -> str | None:
    # 最早插入的行拥有该指纹的物理文件
    statement = (
        select(ArchiveItem.file_id)
        .where(
            ArchiveItem.archive == archive,
            ArchiveItem.fingerprint == fingerprint,
            col(ArchiveItem.deleted_at).is_(None),
        )
        .order_by(ArchiveItem.created_at)
        .limit(1)
    )
    return session.exec(statement).first()


def create_archive_item(
    *,
    session: Session,
    item_id: str,
    file_id: str,
    archive: str,
    url: str,
    fingerprint: str,
    created_at: datetime | None = None,
) -> ArchiveItem:
    db_obj = ArchiveItem(
        id=item_id,
        file_id=file_id,
        archive=archive,
        url=url,
        fingerprint=fingerprint,
    )
    if created_at is not None:
        db_obj.created_at = created_at
    session.add(db_obj)
    session.commit()
    session.refresh(db_obj)
    return db_obj
