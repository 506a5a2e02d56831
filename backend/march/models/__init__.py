from sqlmodel import SQLModel

from .archive_item import ArchiveItem
