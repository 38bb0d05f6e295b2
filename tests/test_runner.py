from __future__ import annotations

from collections import Counter
from dataclasses import replace

import httpx
import pytest

from rulewarmer import runner
from rulewarmer.qrs import QRSError


def _run(config, repository):
    return runner.run(
        config,
        verify=False,
        transport=repository.transport(),
        async_transport=repository.transport(),
    )


def test_run_probes_then_warms_each_valid_user(config, repository, capsys) -> None:
    summary = _run(config, repository)

    assert summary.total == 2
    assert summary.completed == 2
    assert summary.succeeded

    calls = repository.calls()
    service = "UserDirectory=INTERNAL; UserId=sa_repository"
    assert calls[:2] == [("GET", "/qrs/about", service), ("GET", "/qrs/app/count", service)]
    assert Counter(calls[2:]) == Counter(
        {
            ("GET", "/qrs/app/count", "UserDirectory=DOMAIN1; UserId=user1"): 1,
            ("POST", "/qrs/App/table", "UserDirectory=DOMAIN1; UserId=user1"): 1,
            ("GET", "/qrs/app/count", "UserDirectory=DOMAIN2; UserId=user2"): 1,
            ("POST", "/qrs/App/table", "UserDirectory=DOMAIN2; UserId=user2"): 1,
        }
    )
    assert not any(path == "/qrs/systemrule/security/resetcache" for _, path, _ in calls)

    output = capsys.readouterr().out
    assert "Connection successfully established." in output
    assert "Total number of apps: 12" in output
    assert "(0, 2, 0)\tAll jobs enqueued." in output
    assert "(2, 2, 0)\tWorker threads created." in output
    assert "Cache warmed for user: DOMAIN1\\user1\tApps: 12" in output
    assert "Cache warmed for user: DOMAIN2\\user2\tApps: 12" in output
    assert "Total time: " in output


def test_clear_cache_posts_reset_once_as_service_account(config, repository) -> None:
    _run(replace(config, clear_cache=True), repository)

    resets = [call for call in repository.calls() if call[1] == "/qrs/systemrule/security/resetcache"]
    assert resets == [("POST", "/qrs/systemrule/security/resetcache", "UserDirectory=INTERNAL; UserId=sa_repository")]
    reset_request = next(r for r in repository.requests if r.url.path.endswith("/resetcache"))
    assert reset_request.content == b""


def test_probe_failure_stops_before_any_user_request(config, capsys) -> None:
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(401)

    transport = httpx.MockTransport(handler)
    with pytest.raises(QRSError):
        runner.run(config, verify=False, transport=transport, async_transport=transport)

    assert [request.url.path for request in requests] == ["/qrs/about"]
    assert "Connection failed with message: Authentication with the repository service failed" in (
        capsys.readouterr().out
    )


def test_user_failure_is_isolated(config, repository) -> None:
    repository.failing_users.add("user1")

    summary = _run(config, repository)

    assert summary.completed == 2
    assert summary.failed == 1
    assert not summary.succeeded
    warmed = {call[2] for call in repository.calls() if call[1] == "/qrs/App/table"}
    assert warmed == {"UserDirectory=DOMAIN2; UserId=user2"}


def test_repeated_runs_issue_the_same_requests(config, repository) -> None:
    _run(config, repository)
    first = Counter(repository.calls())
    repository.requests.clear()

    _run(config, repository)
    assert Counter(repository.calls()) == first


def test_run_builds_ssl_context_when_not_supplied(config, repository, monkeypatch) -> None:
    built = []

    def fake_build(cfg):
        built.append(cfg)
        return False

    monkeypatch.setattr(runner, "build_ssl_context", fake_build)
    runner.run(config, transport=repository.transport(), async_transport=repository.transport())

    assert built == [config]
