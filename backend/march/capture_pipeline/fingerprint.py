import hashlib
from pathlib import Path

CHUNK_SIZE = 64 * 1024


def md5sum(file_path: str | Path) -> str:
    """Hex encoded MD5 of the file's contents, read in chunks."""
    digest = hashlib.md5()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()
