"""Per-user cache warming job."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from datetime import timedelta

import httpx

from .config import WarmerConfig
from .models import UserIdentity
from .qrs import SECURITY_HEADER, QRSClient, QRSIdentity, Verify, build_security_header, parse_count

APP_COUNT_PATH = "/qrs/app/count"
APP_TABLE_PATH = "/qrs/App/table?orderAscending=true&skip=0&sortColumn=name&take=200"


def _column(name: str, definition: str | None = None, column_type: str = "Property") -> dict:
    return {"name": name, "columnType": column_type, "definition": definition or name}


# Mirrors the column set the hub requests when listing apps.
APP_TABLE_DEFINITION = {
    "entity": "App",
    "columns": [
        _column("id"),
        _column("privileges", column_type="Privileges"),
        _column("name"),
        _column("owner"),
        _column("publishTime"),
        {
            **_column("AppStatuss", "AppStatus", "List"),
            "list": [_column("statusType"), _column("statusValue"), _column("id")],
        },
        _column("stream"),
        {
            **_column("tags", "tag", "List"),
            "list": [_column("name"), _column("id")],
        },
    ],
}
APP_TABLE_BODY = json.dumps(APP_TABLE_DEFINITION, separators=(",", ":"))


@dataclass(frozen=True)
class WarmContext:
    """State shared read-only by every job in a batch."""

    config: WarmerConfig
    verify: Verify
    async_transport: httpx.AsyncBaseTransport | None = None

    def connect(self, identity: UserIdentity) -> QRSClient:
        """Open a new connection impersonating ``identity``."""

        client = QRSClient(
            self.config.url,
            QRSIdentity(user_directory=identity.domain, user_id=identity.user),
            port=self.config.port,
            verify=self.verify,
            timeout=self.config.timeout,
            async_transport=self.async_transport,
        )
        client.custom_headers[SECURITY_HEADER] = build_security_header(
            identity.user, self.config.upn_suffix
        )
        return client


async def warm_user_cache(identity: UserIdentity, context: WarmContext) -> str:
    """Exercise the rule cache as ``identity`` and return the progress message."""

    started = time.perf_counter()
    async with context.connect(identity) as client:
        app_count = parse_count(await client.get_async(APP_COUNT_PATH))
        if context.config.app_table:
            await client.post_async(APP_TABLE_PATH, APP_TABLE_BODY)
    elapsed = timedelta(seconds=time.perf_counter() - started)
    return f"Cache warmed for user: {identity}\tApps: {app_count}\t({elapsed})"


@dataclass(frozen=True)
class WarmJob:
    """One queued unit of work: warm the cache for a single user."""

    identity: UserIdentity
    context: WarmContext

    async def run(self) -> str:
        return await warm_user_cache(self.identity, self.context)

    def __str__(self) -> str:
        return str(self.identity)


__all__ = [
    "APP_COUNT_PATH",
    "APP_TABLE_BODY",
    "APP_TABLE_PATH",
    "WarmContext",
    "WarmJob",
    "warm_user_cache",
]
