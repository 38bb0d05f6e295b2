from __future__ import annotations

import json
from dataclasses import replace

import anyio

from rulewarmer.models import UserIdentity
from rulewarmer.warm import APP_TABLE_BODY, WarmContext, WarmJob, warm_user_cache


def test_app_table_body_requests_expected_columns() -> None:
    body = json.loads(APP_TABLE_BODY)
    assert body["entity"] == "App"
    assert [column["name"] for column in body["columns"]] == [
        "id",
        "privileges",
        "name",
        "owner",
        "publishTime",
        "AppStatuss",
        "stream",
        "tags",
    ]
    status_list = body["columns"][5]
    assert status_list["columnType"] == "List"
    assert status_list["definition"] == "AppStatus"
    assert [column["name"] for column in status_list["list"]] == ["statusType", "statusValue", "id"]
    assert [column["name"] for column in body["columns"][7]["list"]] == ["name", "id"]


def test_warm_user_cache_issues_count_and_table_requests(config, repository) -> None:
    config = replace(config, upn_suffix="@corp.local")
    context = WarmContext(config=config, verify=False, async_transport=repository.transport())
    identity = UserIdentity(domain="CORP", user="alice")

    message = anyio.run(warm_user_cache, identity, context)

    assert message.startswith("Cache warmed for user: CORP\\alice\tApps: 12\t(")
    assert [(request.method, request.url.path) for request in repository.requests] == [
        ("GET", "/qrs/app/count"),
        ("POST", "/qrs/App/table"),
    ]
    for request in repository.requests:
        assert request.url.port == 4242
        assert request.headers["X-Qlik-User"] == "UserDirectory=CORP; UserId=alice"
        assert request.headers["X-Qlik-Security"].endswith(" UserPrincipleName=ALICE@corp.local;")

    table_request = repository.requests[1]
    assert table_request.url.params["sortColumn"] == "name"
    assert table_request.url.params["skip"] == "0"
    assert table_request.content.decode("utf-8") == APP_TABLE_BODY


def test_count_only_skips_table_request(config, repository) -> None:
    context = WarmContext(
        config=replace(config, app_table=False),
        verify=False,
        async_transport=repository.transport(),
    )

    job = WarmJob(identity=UserIdentity(domain="CORP", user="bob"), context=context)
    anyio.run(job.run)

    assert [request.url.path for request in repository.requests] == ["/qrs/app/count"]
    header = repository.requests[0].headers["X-Qlik-Security"]
    assert "UserPrincipleName" not in header
    assert str(job) == "CORP\\bob"


def test_context_verify_setting_reaches_connection(config) -> None:
    context = WarmContext(config=config, verify=False)
    client = context.connect(UserIdentity(domain="CORP", user="carol"))

    assert client.identity.user_directory == "CORP"
    assert client.identity.user_id == "carol"
    assert client.custom_headers["X-Qlik-Security"].startswith("SecureRequest=true;")
