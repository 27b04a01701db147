"""
Observability bootstrap.

Назначение:
- централизованно включить логирование на старте процесса (api/worker)
- метрики подключаются отдельным вызовом setup_metrics_endpoint
"""

from __future__ import annotations

from smart_content.common.config import get_settings
from smart_content.common.logging import get_project_logger, setup_logging

log = get_project_logger()


def setup_observability(service_name: str | None = None) -> None:
    setup_logging()
    s = get_settings()
    log.info(
        "observability_ready",
        extra={"payload": {"service": service_name or s.service_name, "app_env": s.app_env}},
    )
