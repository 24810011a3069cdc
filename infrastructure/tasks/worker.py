"""Entry point for a gateway worker.

Runs a worker consuming the webhook (high) and refund (default) queues. Pass
``--beat`` to embed the scheduler for single-process deployments; production
runs ``celery beat`` separately so only one scheduler exists.
"""
from __future__ import annotations

import sys

from .config.celery import celery_app


def main(argv: list[str] | None = None) -> None:
    extra = list(sys.argv[1:] if argv is None else argv)
    celery_app.worker_main(
        argv=[
            "worker",
            "--hostname=gateway@%h",
            "--queues=high,default",
            "--loglevel=INFO",
            *extra,
        ]
    )


if __name__ == "__main__":
    main()
