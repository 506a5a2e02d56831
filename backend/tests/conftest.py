import base64
import stat
from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import Engine
from sqlmodel import Session

from march.core.config import (
    ArchiveConfig,
    ArchiverConfig,
    MarchConfig,
    Registry,
    UserConfig,
    build_registry,
)
from march.core.db import create_db_engine, init_db
from march.main import create_app

SAME_CONTENT = "identical captured bytes"


def write_agent(directory: Path, name: str, body: str) -> Path:
    script = directory / name
    script.write_text("#!/bin/sh\n" + body + "\n")
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


def basic_auth(username: str, password: str) -> dict[str, str]:
    token = base64.b64encode(f"{username}:{password}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


@pytest.fixture
def agents_dir(tmp_path: Path) -> Path:
    d = tmp_path / "agents"
    d.mkdir()
    return d


@pytest.fixture
def storage(tmp_path: Path) -> Path:
    d = tmp_path / "storage" / "news"
    d.mkdir(parents=True)
    return d


@pytest.fixture
def registry(tmp_path: Path, agents_dir: Path, storage: Path) -> Registry:
    # mirror 和 example.com 下的 /same 产出相同内容，其余写入 URL 本身
    same = write_agent(agents_dir, "same.sh", f"printf '%s' '{SAME_CONTENT}' > \"$2\"")
    echo = write_agent(agents_dir, "echo.sh", "printf '%s' \"$1\" > \"$2\"")
    fail = write_agent(agents_dir, "fail.sh", "echo 'agent exploded' >&2\nexit 3")
    config = MarchConfig(
        port=8080,
        database=str(tmp_path / "march.db"),
        archives=[
            ArchiveConfig(
                name="news",
                storage=str(storage),
                users=[UserConfig(username="alice", password="s3cret:colon")],
            ),
            ArchiveConfig(
                name="other",
                storage=str(tmp_path / "storage" / "other"),
                users=[UserConfig(username="bob", password="hunter2")],
            ),
        ],
        archivers=[
            ArchiverConfig(name="mirror", script=str(same), regexp=r"^https://example\.com/a-mirror$"),
            ArchiverConfig(name="same", script=str(same), regexp=r"^https://example\.com/same"),
            ArchiverConfig(name="broken", script=str(fail), regexp=r"^https://broken\.example/"),
            ArchiverConfig(name="echo", script=str(echo), regexp=r"^https://example\.com/.*"),
        ],
    )
    return build_registry(config)


@pytest.fixture
def engine(registry: Registry) -> Generator[Engine, None, None]:
    db_engine = create_db_engine(registry.database)
    init_db(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def db(engine: Engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


@pytest.fixture
def client(registry: Registry, engine: Engine) -> Generator[TestClient, None, None]:
    with TestClient(create_app(registry, engine)) as c:
        yield c
