from __future__ import annotations

import json
import sys
import threading
from pathlib import Path
from typing import List, Tuple

import httpx
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from rulewarmer.config import WarmerConfig  # noqa: E402


class FakeRepository:
    """Records QRS requests and answers them like a small repository."""

    def __init__(self, app_count: int = 12) -> None:
        self.app_count = app_count
        self.requests: List[httpx.Request] = []
        self.failing_users: set[str] = set()
        self._lock = threading.Lock()

    def handler(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)
        user_header = request.headers.get("X-Qlik-User", "")
        fields = dict(part.strip().split("=", 1) for part in user_header.split(";") if "=" in part)
        if fields.get("UserId") in self.failing_users:
            return httpx.Response(500, json={"message": "rule evaluation failed"})
        if request.url.path == "/qrs/about":
            return httpx.Response(200, json={"buildVersion": "24.1"})
        if request.url.path == "/qrs/app/count":
            return httpx.Response(200, json={"value": self.app_count})
        if request.url.path == "/qrs/App/table":
            json.loads(request.content)
            return httpx.Response(201, json={"columnNames": [], "rows": []})
        if request.url.path == "/qrs/systemrule/security/resetcache":
            return httpx.Response(204)
        return httpx.Response(404)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self) -> List[Tuple[str, str, str]]:
        return [
            (request.method, request.url.path, request.headers.get("X-Qlik-User", ""))
            for request in self.requests
        ]


@pytest.fixture()
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture()
def users_file(tmp_path: Path) -> Path:
    path = tmp_path / "users.txt"
    path.write_text("DOMAIN1\\user1\nbad-line\n\\empty\nDOMAIN2\\user2\n", encoding="utf-8")
    return path


@pytest.fixture()
def config(users_file: Path) -> WarmerConfig:
    return WarmerConfig(users_path=users_file, url="https://qlik.example.com", threads=2)
