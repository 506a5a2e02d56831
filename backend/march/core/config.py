import json
import re
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Literal, Mapping

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when the archive configuration can't be loaded. Fatal at startup."""


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MARCH_",
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    PROJECT_NAME: str = "march"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    SENTRY_DSN: str | None = None
    LOG_LEVEL: str = "INFO"

    # 配置文件路径 (archives, archivers, database, port)
    CONFIG: str | None = None

    # 0 means no bound on concurrently running capture agents
    CAPTURE_CONCURRENCY: int = Field(default=0, ge=0)
    CAPTURE_TIMEOUT: float | None = Field(default=None, gt=0)


settings = Settings()  # type: ignore


# 配置文件结构
class UserConfig(BaseModel):
    username: str
    password: str


class ArchiveConfig(BaseModel):
    name: str
    storage: str
    users: list[UserConfig] = []


class ArchiverConfig(BaseModel):
    name: str
    script: str
    regexp: str


class MarchConfig(BaseModel):
    port: int = 8080
    database: str = ""
    archives: list[ArchiveConfig] = []
    archivers: list[ArchiverConfig] = []


@dataclass(frozen=True)
class Archive:
    name: str
    storage: Path
    users: tuple[tuple[str, str], ...]


@dataclass(frozen=True)
class CaptureAgent:
    name: str
    script: str
    pattern: re.Pattern[str]

    def matches(self, url: str) -> bool:
        return self.pattern.search(url) is not None


@dataclass(frozen=True)
class Registry:
    """
    Immutable snapshot of the archives and capture agents.

    Built once before serving starts and shared read-only by every request
    handler and background capture. The order of ``agents`` is the order of
    the ``archivers`` list in the config file, and the first matching agent
    wins, so reordering that list changes which agent captures a URL.
    """

    port: int
    database: str
    archives: Mapping[str, Archive]
    agents: tuple[CaptureAgent, ...]

    def get_archive(self, name: str) -> Archive | None:
        return self.archives.get(name)


def build_registry(config: MarchConfig) -> Registry:
    archives: dict[str, Archive] = {}
    for a in config.archives:
        if a.name in archives:
            raise ConfigurationError(f"duplicate archive name: {a.name}")
        archives[a.name] = Archive(
            name=a.name,
            storage=Path(a.storage),
            users=tuple((u.username, u.password) for u in a.users),
        )

    agents = []
    for a in config.archivers:
        try:
            pattern = re.compile(a.regexp)
        except re.error as e:
            raise ConfigurationError(f"unable to compile regexp {a.regexp!r}: {e}") from e
        agents.append(CaptureAgent(name=a.name, script=a.script, pattern=pattern))

    if not config.database:
        raise ConfigurationError("database path can't be empty")

    return Registry(
        port=config.port,
        database=config.database,
        archives=MappingProxyType(archives),
        agents=tuple(agents),
    )


def load_config(path: str | Path) -> Registry:
    """Read, validate and compile the JSON configuration file."""
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"unable to read config {path}: {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"unable to parse config {path}: {e}") from e

    try:
        config = MarchConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"invalid config {path}: {e}") from e

    return build_registry(config)
