"""Celery worker entrypoint that re-exports the configured app.

One worker process group per queue so each queue keeps its own concurrency:

    python -m workers.worker reports
    python -m workers.worker ml-analysis
"""

from __future__ import annotations

import sys
from typing import List, Optional

from core.config import QueueSettings
from core.logging import setup_logging

from .celery_app import QUEUE_SETTINGS, app


def worker_argv(queue_name: str, settings: Optional[QueueSettings] = None) -> List[str]:
    settings = settings or QUEUE_SETTINGS
    concurrency = {
        settings.report_queue: settings.report_concurrency,
        settings.analysis_queue: settings.analysis_concurrency,
    }.get(queue_name)
    if concurrency is None:
        raise ValueError(f"Unknown queue: {queue_name}")
    return [
        "worker",
        "--queues",
        queue_name,
        "--concurrency",
        str(concurrency),
        "--prefetch-multiplier",
        "1",
        "--hostname",
        f"{queue_name}@%h",
        "--loglevel",
        "INFO",
    ]


def main(argv: Optional[List[str]] = None) -> None:
    args = list(sys.argv[1:] if argv is None else argv)
    setup_logging()
    app.worker_main(worker_argv(args[0] if args else QUEUE_SETTINGS.report_queue))


if __name__ == "__main__":
    main()


__all__ = ["app", "main", "worker_argv"]
