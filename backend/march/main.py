import argparse
import logging
from contextlib import asynccontextmanager

import sentry_sdk
import uvicorn
from fastapi import FastAPI
from fastapi.routing import APIRoute
from sqlalchemy import Engine

from march.api.main import api_router
from march.core.config import ConfigurationError, Registry, load_config, settings
from march.core.db import create_db_engine, init_db
from march.worker_tasks.ingest import IngestionEngine

logger = logging.getLogger(__name__)


# 自定义生成唯一ID函数
def custom_generate_unique_id(route: APIRoute) -> str:
    return f"{route.tags[0]}-{route.name}"


def configure_logging() -> None:
    logging.basicConfig(level=settings.LOG_LEVEL)
    logging.getLogger("march").setLevel(settings.LOG_LEVEL)


def prepare_storage(registry: Registry) -> None:
    for archive in registry.archives.values():
        archive.storage.mkdir(parents=True, exist_ok=True)


def create_app(registry: Registry | None = None, engine: Engine | None = None) -> FastAPI:
    """
    Build the application. Without a registry the configuration file named by
    ``MARCH_CONFIG`` is loaded when the application starts.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # 启动：配置日志、加载配置、准备存储目录、迁移数据库
        configure_logging()
        reg = registry
        if reg is None:
            if not settings.CONFIG:
                raise ConfigurationError("you need to specify a config file (MARCH_CONFIG)")
            reg = load_config(settings.CONFIG)
        prepare_storage(reg)

        db_engine = engine if engine is not None else create_db_engine(reg.database)
        init_db(db_engine)

        app.state.registry = reg
        app.state.engine = db_engine
        app.state.ingestion = IngestionEngine(
            reg,
            db_engine,
            concurrency=settings.CAPTURE_CONCURRENCY,
            timeout=settings.CAPTURE_TIMEOUT,
        )
        logger.info(
            f"Serving {len(reg.archives)} archive(s) with {len(reg.agents)} capture agent(s)"
        )
        yield
        # 关闭：释放数据库连接
        if engine is None:
            db_engine.dispose()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        generate_unique_id_function=custom_generate_unique_id,
        lifespan=lifespan,
        openapi_url=None,
    )
    app.include_router(api_router)
    return app


if settings.SENTRY_DSN and settings.ENVIRONMENT != "local":
    sentry_sdk.init(dsn=str(settings.SENTRY_DSN), enable_tracing=True)

app = create_app()


def main() -> None:
    parser = argparse.ArgumentParser(description="Archive URLs through capture agents.")
    parser.add_argument("--config", default=settings.CONFIG, help="Config file")
    args = parser.parse_args()

    configure_logging()

    if not args.config:
        parser.error("you need to specify a --config file")

    try:
        registry = load_config(args.config)
    except ConfigurationError as e:
        parser.exit(1, f"error: unable to load config: {e}\n")

    uvicorn.run(create_app(registry), host="0.0.0.0", port=registry.port)


if __name__ == "__main__":
    main()
