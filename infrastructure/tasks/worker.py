"""Entry point for an invoice worker process.

Equivalent to ``celery -A infrastructure.tasks worker -Q invoices,default``;
pass ``--beat`` to also run the PENDING_PDF sweep schedule in-process.
"""
from __future__ import annotations

import sys

from .config.celery import celery_app


def main(argv: list[str] | None = None) -> None:
    extra = list(sys.argv[1:] if argv is None else argv)
    args = ["worker", "--hostname=invoices@%h", "--queues=invoices,default", "--loglevel=INFO"]
    if "--beat" in extra:
        extra.remove("--beat")
        args.append("--beat")
    celery_app.worker_main(argv=args + extra)


if __name__ == "__main__":
    main()
