from datetime import datetime, timezone

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ArchiveItem(SQLModel, table=True):
    """
    One captured submission. ``file_id`` names the physical file in the
    archive's storage directory; several items may share it when their
    captured bytes are identical. Rows are never updated, ``deleted_at`` is
    reserved and only ever filtered on.
    """
    __tablename__ = "archive_item"

    id: str = Field(max_length=36, primary_key=True)
    file_id: str = Field(max_length=36)
    archive: str
    url: str
    fingerprint: str = Field(max_length=32)
    deleted_at: datetime | None = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)
