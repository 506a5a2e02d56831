import asyncio
import logging
from pathlib import Path

from sqlalchemy import Engine
from sqlmodel import Session

from march import crud
from march.capture_pipeline import CaptureFailure, dispatch, store_capture
from march.core.config import Archive, Registry
from march.core.db import writer
from march.models import ArchiveItem

logger = logging.getLogger(__name__)


class IngestionEngine:
    """
    Runs one submission: dispatch to a capture agent, deduplicate, record.

    ``ingest`` is meant to be scheduled as a background task after the id has
    been handed to the client. Failures are logged and never retried; the
    client only learns about them by the id not resolving later.

    With ``concurrency`` > 0 at most that many captures run at once, the rest
    wait inside their background task. 0 leaves captures unbounded.
    """

    def __init__(
        self,
        registry: Registry,
        engine: Engine,
        *,
        concurrency: int = 0,
        timeout: float | None = None,
    ):
        self.registry = registry
        self.engine = engine
        self.timeout = timeout
        self._slots = asyncio.Semaphore(concurrency) if concurrency > 0 else None

    async def ingest(self, archive: Archive, url: str, item_id: str) -> ArchiveItem | None:
        if self._slots is None:
            return await self._ingest(archive, url, item_id)
        async with self._slots:
            return await self._ingest(archive, url, item_id)

    async def _ingest(self, archive: Archive, url: str, item_id: str) -> ArchiveItem | None:
        try:
            captured = await dispatch(
                self.registry.agents, url, archive.storage, item_id, timeout=self.timeout
            )
        except CaptureFailure as e:
            output = e.output.decode("utf-8", errors="replace").strip()
            logger.error(f"[{item_id}] capture of {url} failed: {e} {output}".rstrip())
            return None

        if captured is None:
            return None

        try:
            # 计算指纹和写库是阻塞操作，放到线程里执行
            item = await asyncio.to_thread(self.store, archive, url, item_id, captured)
        except Exception as e:
            logger.error(f"[{item_id}] add to archive {archive.name} failed: {e}")
            return None

        logger.info(f"[{item_id}] archived {url} in {archive.name} as file {item.file_id}")
        return item

    def store(self, archive: Archive, url: str, item_id: str, captured: Path) -> ArchiveItem:
        """
        Record a captured file. If recording fails the file is removed,
        unless a row already claims it as its physical file.
        """
        with Session(writer(self.engine)) as session:
            try:
                return store_capture(
                    session=session,
                    archive=archive,
                    item_id=item_id,
                    url=url,
                    captured=captured,
                )
            except Exception:
                session.rollback()
                owner = crud.get_file_id_by_id(
                    session=session, archive=archive.name, item_id=item_id
                )
                if owner != item_id:
                    captured.unlink(missing_ok=True)
                raise
