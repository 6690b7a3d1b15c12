"""ARQ worker entrypoint."""

import logging

import httpx
from arq import cron
from arq.connections import RedisSettings

from sentinel.api.deps import build_audit_orchestrator
from sentinel.core.config import get_settings
from sentinel.services.directory import DirectoryClient
from sentinel.workers.audit import run_guest_audit
from sentinel.workers.retention import purge_expired_data

HTTP_TIMEOUT_SECONDS = 30.0


def _redis_settings() -> RedisSettings:
    """Parse REDIS_URL into ARQ RedisSettings."""
    settings = get_settings()
    # redis://host:port/db
    url = settings.redis_url
    rest = url.split("://", 1)[1] if "://" in url else url
    host_port, _, db = rest.partition("/")
    host, _, port = host_port.partition(":")
    return RedisSettings(
        host=host or "localhost",
        port=int(port) if port else 6379,
        database=int(db) if db else 0,
    )


async def startup(ctx: dict) -> None:
    """Called when the worker starts."""
    from sentinel.core.database import async_session_factory, init_db

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    await init_db()

    http = httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS)
    directory = DirectoryClient(http, api_url=settings.slack_api_url)
    ctx["http_client"] = http
    ctx["session_factory"] = async_session_factory
    ctx["orchestrator"] = build_audit_orchestrator(settings, async_session_factory, directory)


async def shutdown(ctx: dict) -> None:
    """Called when the worker shuts down."""
    http = ctx.get("http_client")
    if http is not None:
        await http.aclose()


class WorkerSettings:
    """ARQ worker configuration."""
    functions = [run_guest_audit, purge_expired_data]
    cron_jobs = [
        cron(run_guest_audit, hour={0}, minute={0}, unique=True),
        cron(purge_expired_data, hour={3}, minute={0}, unique=True),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = _redis_settings()
    max_jobs = 10
    job_timeout = 3600  # a full audit can take most of an hour


if __name__ == "__main__":
    from arq import run_worker
    run_worker(WorkerSettings)  # type: ignore[arg-type]
