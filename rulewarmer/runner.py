"""Orchestration of a full warm-up batch."""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Union

import anyio
import httpx

from .certificates import load_certificates_from_directory, load_certificates_from_store
from .config import WarmerConfig
from .models import UserIdentity
from .pool import BatchSummary, JobQueue, WorkerPool
from .progress import ProgressCounters
from .qrs import QRSClient, QRSIdentity, Verify, parse_count
from .users import load_users
from .warm import APP_COUNT_PATH, WarmContext, WarmJob

logger = logging.getLogger("rulewarmer.runner")

ABOUT_PATH = "/qrs/about"
RESET_CACHE_PATH = "/qrs/systemrule/security/resetcache"
SERVICE_IDENTITY = QRSIdentity(user_directory="INTERNAL", user_id="sa_repository")


def build_ssl_context(config: WarmerConfig) -> Verify:
    """Load the client certificates once for the whole run."""

    if config.certificates_path is not None:
        bundle = load_certificates_from_directory(config.certificates_path)
    else:
        bundle = load_certificates_from_store()
    logger.info("Using client certificate %s", bundle.client_cert)
    return bundle.ssl_context(verify=config.verify_certificates)


def probe_connection(
    config: WarmerConfig,
    verify: Verify,
    *,
    transport: httpx.BaseTransport | None = None,
) -> Union[int, str]:
    """Confirm connectivity as the repository service account.

    Returns the total number of apps. Any failure is reported and re-raised.
    """

    client = QRSClient(
        config.url,
        SERVICE_IDENTITY,
        port=config.port,
        verify=verify,
        timeout=config.timeout,
        transport=transport,
    )
    try:
        with client:
            print(f"Connecting to {client.url}")
            client.get(ABOUT_PATH)
            app_count = parse_count(client.get(APP_COUNT_PATH))
            print("Connection successfully established.")
            print(f"Total number of apps: {app_count}")
            if config.clear_cache:
                client.post(RESET_CACHE_PATH, "")
                print("Clearing repository rules security rules cache.")
    except Exception as exc:
        print(f"Connection failed with message: {exc} ")
        raise
    return app_count


def enqueue_jobs(
    identities: Iterable[UserIdentity],
    context: WarmContext,
    counters: ProgressCounters,
) -> JobQueue[WarmJob]:
    job_queue: JobQueue[WarmJob] = JobQueue(counters)
    for identity in identities:
        job_queue.enqueue(WarmJob(identity=identity, context=context))
    counters.report("All jobs enqueued.")
    return job_queue


def warm_caches(
    config: WarmerConfig,
    identities: Iterable[UserIdentity],
    verify: Verify,
    *,
    counters: ProgressCounters | None = None,
    async_transport: httpx.AsyncBaseTransport | None = None,
) -> BatchSummary:
    """Enqueue one job per identity and drain the queue with the worker pool."""

    counters = counters or ProgressCounters()
    context = WarmContext(config=config, verify=verify, async_transport=async_transport)
    job_queue = enqueue_jobs(identities, context, counters)
    pool = WorkerPool(job_queue, counters, workers=config.threads)
    summary = anyio.run(_run_pool, pool, config.deadline)
    print(f"Total time: {summary.elapsed}")
    return summary


async def _run_pool(pool: WorkerPool, deadline: Optional[float]) -> BatchSummary:
    return await pool.run(deadline=deadline)


def run(
    config: WarmerConfig,
    *,
    verify: Verify | None = None,
    transport: httpx.BaseTransport | None = None,
    async_transport: httpx.AsyncBaseTransport | None = None,
) -> BatchSummary:
    """Execute the complete startup sequence and warm-up batch.

    ``verify`` defaults to an SSL context built from the configured client
    certificates.
    """

    if verify is None:
        verify = build_ssl_context(config)

    probe_connection(config, verify, transport=transport)
    identities = load_users(config.users_path)
    summary = warm_caches(config, identities, verify, async_transport=async_transport)

    if summary.failed:
        logger.warning("%d of %d job(s) failed", summary.failed, summary.total)
    return summary


__all__ = [
    "ABOUT_PATH",
    "RESET_CACHE_PATH",
    "SERVICE_IDENTITY",
    "build_ssl_context",
    "enqueue_jobs",
    "probe_connection",
    "run",
    "warm_caches",
]
