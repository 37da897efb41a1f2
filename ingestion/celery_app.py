"""Celery 애플리케이션 부트스트랩."""

from __future__ import annotations

import logging

from celery import Celery, signals

from .settings import Settings, get_settings
from .utils.logging import configure_logging

_CELERY_APP: Celery | None = None

TASK_MODULES = ["ingestion.tasks.ingest", "ingestion.tasks.validate"]


def create_celery_app(settings: Settings | None = None) -> Celery:
    """설정을 기반으로 Celery 인스턴스를 생성한다.

    실행 주기(beat)는 외부 스케줄러가 담당하므로 여기서는 등록하지 않는다.
    """
    config = settings or get_settings()
    configure_logging(config.log_level, json_enabled=config.log_json)

    app = Celery("ingestion", broker=config.redis_url, backend=config.redis_url, include=TASK_MODULES)
    app.conf.update(
        task_default_queue="ingestion.default",
        task_default_exchange="ingestion",
        task_default_routing_key="ingestion.default",
        task_routes={
            "ingestion.ingest_postings": {"queue": "ingestion.ingest"},
            "ingestion.validate_catalog": {"queue": "ingestion.validate"},
        },
        task_soft_time_limit=config.celery_task_soft_time_limit,
        worker_concurrency=config.celery_worker_concurrency,
        timezone="UTC",
        enable_utc=True,
        worker_send_task_events=True,
        task_send_sent_event=True,
    )

    _install_signal_handlers(app)
    return app


def get_celery_app() -> Celery:
    """싱글톤 Celery 인스턴스를 반환한다."""
    global _CELERY_APP
    if _CELERY_APP is None:
        _CELERY_APP = create_celery_app()
    return _CELERY_APP


def _install_signal_handlers(app: Celery) -> None:
    logger = logging.getLogger("ingestion.worker")

    @signals.worker_shutdown.connect(weak=False)  # type: ignore[attr-defined]
    def _on_worker_shutdown(sender=None, **kwargs):  # noqa: ANN001
        logger.info("worker.shutdown", extra={"sender": str(sender), "app": app.main})
