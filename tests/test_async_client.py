"""Tests for AsyncWxWorkClient, driven through httpx.MockTransport."""

import asyncio
import json

import httpx
import pytest

from wxwork_api_client import (
    AsyncWxWorkClient,
    WxWorkConfigurationError,
    WxWorkNotFoundError,
    WxWorkParseError,
    WxWorkTransportError,
    WxWorkUpstreamError,
)

TOKEN_RESPONSE = {"errcode": 0, "errmsg": "ok", "access_token": "T1"}


class FakeWeCom:
    """Routes requests by path to canned JSON payloads and records them."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        payload = self.routes[request.url.path.rsplit("/cgi-bin", 1)[-1]]
        if isinstance(payload, Exception):
            raise payload
        if isinstance(payload, bytes):
            return httpx.Response(200, content=payload)
        return httpx.Response(200, json=payload)

    def paths(self):
        return [r.url.path for r in self.requests]


def make_client(routes, **config):
    fake = FakeWeCom(routes)
    config.setdefault("corp_id", "ww-corp")
    config.setdefault("corp_secret", "s3cret")
    client = AsyncWxWorkClient(transport=httpx.MockTransport(fake), **config)
    return client, fake


@pytest.mark.asyncio
async def test_get_access_token_returns_vendor_token():
    client, fake = make_client({"/gettoken": TOKEN_RESPONSE})

    async with client:
        assert await client.get_access_token() == "T1"

    request = fake.requests[0]
    assert request.method == "GET"
    assert request.url.host == "qyapi.weixin.qq.com"
    assert request.url.path == "/cgi-bin/gettoken"
    assert request.url.params["corpid"] == "ww-corp"
    assert request.url.params["corpsecret"] == "s3cret"
    assert request.headers["User-Agent"].startswith("wxwork-api-client/")


@pytest.mark.asyncio
async def test_get_access_token_vendor_error():
    client, _ = make_client({"/gettoken": {"errcode": 40001, "errmsg": "invalid credential"}})

    async with client:
        with pytest.raises(WxWorkUpstreamError, match="invalid credential") as excinfo:
            await client.get_access_token()

    assert excinfo.value.code == 40001


@pytest.mark.asyncio
async def test_unconfigured_client_fails_before_network():
    client, fake = make_client({}, corp_id="", corp_secret="")

    async with client:
        with pytest.raises(WxWorkConfigurationError):
            await client.get_department_list()

    assert fake.requests == []


@pytest.mark.asyncio
async def test_get_department_list_defaults_to_root_and_reuses_token():
    client, fake = make_client(
        {"/gettoken": TOKEN_RESPONSE, "/department/simplelist": {"errcode": 0, "department_list": []}}
    )

    async with client:
        await client.get_department_list()
        await client.get_department_list()

    assert fake.paths() == [
        "/cgi-bin/gettoken",
        "/cgi-bin/department/simplelist",
        "/cgi-bin/department/simplelist",
    ]
    assert fake.requests[1].url.params["id"] == "1"
    assert fake.requests[1].url.params["access_token"] == "T1"


@pytest.mark.asyncio
async def test_concurrent_calls_share_seeded_token():
    client, fake = make_client(
        {
            "/department/list": {"errcode": 0, "department": []},
            "/user/simplelist": {"errcode": 0, "userlist": []},
        }
    )
    client.set_access_token("PERSISTED")

    async with client:
        await asyncio.gather(
            client.get_department_detail(2),
            client.get_department_user_list(2),
        )

    assert "/cgi-bin/gettoken" not in fake.paths()
    assert all(r.url.params["access_token"] == "PERSISTED" for r in fake.requests)


@pytest.mark.asyncio
async def test_get_root_department():
    client, _ = make_client(
        {
            "/gettoken": TOKEN_RESPONSE,
            "/department/simplelist": {
                "errcode": 0,
                "department_list": [
                    {"id": 1, "name": "Root", "parentid": 0},
                    {"id": 2, "name": "Sales", "parentid": 1},
                ],
            },
        }
    )

    async with client:
        assert await client.get_root_department() == {"id": 1, "name": "Root"}


@pytest.mark.asyncio
async def test_get_root_department_not_found():
    client, _ = make_client(
        {
            "/gettoken": TOKEN_RESPONSE,
            "/department/simplelist": {"errcode": 0, "department_list": []},
        }
    )

    async with client:
        with pytest.raises(WxWorkNotFoundError):
            await client.get_root_department()


@pytest.mark.asyncio
async def test_get_user_info_converts_openid():
    converted = {"errcode": 0, "errmsg": "ok", "userid": "zhangsan"}
    client, fake = make_client(
        {
            "/gettoken": TOKEN_RESPONSE,
            "/auth/getuserinfo": {"errcode": 0, "openid": "oAbc"},
            "/user/convert_to_userid": converted,
        }
    )

    async with client:
        assert await client.get_user_info("CODE") == converted

    convert = fake.requests[-1]
    assert convert.method == "POST"
    assert json.loads(convert.content) == {"openid": "oAbc"}


@pytest.mark.asyncio
async def test_get_user_detail_and_send_message():
    detail = {"errcode": 0, "userid": "zhangsan", "name": "Zhang San"}
    sent = {"errcode": 0, "errmsg": "ok", "invaliduser": "", "msgid": "m1"}
    client, fake = make_client(
        {"/gettoken": TOKEN_RESPONSE, "/user/get": detail, "/message/send": sent}
    )

    async with client:
        assert await client.get_user_detail("zhangsan") == detail
        assert await client.send_message({"touser": "zhangsan", "msgtype": "text"}) == sent

    assert fake.requests[1].url.params["userid"] == "zhangsan"
    assert fake.requests[2].method == "POST"


@pytest.mark.asyncio
async def test_transport_error_is_wrapped():
    client, _ = make_client({"/gettoken": httpx.ConnectError("connection refused")})

    async with client:
        with pytest.raises(WxWorkTransportError, match="connection refused") as excinfo:
            await client.get_access_token()

    assert isinstance(excinfo.value.__cause__.__cause__, httpx.ConnectError)


@pytest.mark.asyncio
async def test_non_json_body_raises_parse_error():
    client, _ = make_client({"/gettoken": b"<html>oops</html>"})

    async with client:
        with pytest.raises(WxWorkParseError):
            await client.get_access_token()


@pytest.mark.asyncio
async def test_aclose_is_idempotent():
    client, _ = make_client({"/gettoken": TOKEN_RESPONSE})

    await client.get_access_token()
    await client.aclose()
    await client.aclose()

    assert client._client.is_closed
