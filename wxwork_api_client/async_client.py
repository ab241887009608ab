"""
Asyncio client implementation for the WeCom corporate API.

:class:`AsyncWxWorkClient` mirrors :class:`~wxwork_api_client.client.WxWorkClient`
method for method, but every call is a coroutine and requests go
through a shared :class:`httpx.AsyncClient`.  Many calls may be in
flight on one instance at the same time.

.. code-block:: python

    async with AsyncWxWorkClient(corp_id="ww0123", corp_secret="secret") as client:
        root = await client.get_root_department()
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

import httpx
import structlog

from .base import (
    CONVERT_TO_USERID_PATH,
    DEPARTMENT_LIST_PATH,
    DEPARTMENT_SIMPLELIST_PATH,
    GET_TOKEN_PATH,
    GET_USER_INFO_PATH,
    GET_USER_PATH,
    ROOT_DEPARTMENT_ID,
    SEND_MESSAGE_PATH,
    USER_AGENT,
    USER_SIMPLELIST_PATH,
    BaseWxWorkClient,
    check_response,
    decode_body,
    find_root_department,
)
from .exceptions import WxWorkTransportError

logger = structlog.get_logger(__name__)


class AsyncWxWorkClient(BaseWxWorkClient):
    """An asyncio client for the WeCom corporate API.

    Accepts the constructor arguments of
    :class:`~wxwork_api_client.base.BaseWxWorkClient` plus an optional
    ``transport`` handed to :class:`httpx.AsyncClient`, which tests use
    to plug in :class:`httpx.MockTransport`.

    Concurrent calls that find the token expired each fetch a new one;
    there is no shared in-flight fetch.
    """

    def __init__(
        self,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the underlying httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Content-Type": "application/json",
                    "User-Agent": USER_AGENT,
                },
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    async def __aenter__(self) -> "AsyncWxWorkClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if open."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------
    async def get_access_token(self) -> str:
        """Return a valid access token, fetching a new one if needed."""
        with self._operation("get_access_token"):
            token = self._cached_token()
            if token is not None:
                return token
            params = self._token_params()
            logger.info("Fetching WeCom access token")
            return self._store_token(await self._request("GET", GET_TOKEN_PATH, params=params))

    # ------------------------------------------------------------------
    # HTTP request helpers
    # ------------------------------------------------------------------
    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
    ) -> Dict[str, Any]:
        """Perform one HTTP request and return the parsed JSON object.

        Raises :class:`WxWorkTransportError` on network failure and
        :class:`WxWorkParseError` when the body is not a JSON object.
        """
        start_time = time.time()
        logger.debug("Making WeCom request", method=method, path=path)
        try:
            response = await self.client.request(method, path, params=params, json=json)
        except httpx.HTTPError as exc:
            raise WxWorkTransportError(
                "request", self._redact(f"{method} {path}: {exc!r}")
            ) from exc
        logger.debug(
            "WeCom request completed",
            path=path,
            status_code=response.status_code,
            duration_seconds=round(time.time() - start_time, 3),
        )
        return decode_body(response.content)

    async def _call(
        self,
        method: str,
        path: str,
        operation: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
    ) -> Dict[str, Any]:
        query = {"access_token": await self.get_access_token()}
        if params:
            query.update(params)
        data = await self._request(method, path, params=query, json=json)
        return check_response(data, operation)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    async def get_user_info(self, code: str) -> Dict[str, Any]:
        """Exchange an OAuth authorization code for ``{"userid": ...}``."""
        with self._operation("get_user_info"):
            logger.info("Fetching WeCom user info", code=code)
            data = await self._call(
                "GET", GET_USER_INFO_PATH, "get_user_info", params={"code": code}
            )
            if data.get("openid") and not data.get("userid"):
                return await self.get_user_info_by_openid(data["openid"])
            logger.info("WeCom user info fetched")
            return {"userid": data.get("userid")}

    async def get_user_info_by_openid(self, openid: str) -> Dict[str, Any]:
        with self._operation("get_user_info_by_openid"):
            logger.info("Converting WeCom openid to userid", openid=openid)
            data = await self._call(
                "POST", CONVERT_TO_USERID_PATH, "get_user_info_by_openid", json={"openid": openid}
            )
            logger.info("WeCom userid resolved")
            return data

    async def get_user_detail(self, userid: str) -> Dict[str, Any]:
        with self._operation("get_user_detail"):
            logger.info("Fetching WeCom user detail", userid=userid)
            data = await self._call(
                "GET", GET_USER_PATH, "get_user_detail", params={"userid": userid}
            )
            logger.info("WeCom user detail fetched")
            return data

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------
    async def send_message(self, content: Dict[str, Any]) -> Dict[str, Any]:
        with self._operation("send_message"):
            logger.info("Sending WeCom message", msgtype=content.get("msgtype"))
            data = await self._call("POST", SEND_MESSAGE_PATH, "send_message", json=content)
            logger.info("WeCom message sent", msgid=data.get("msgid"))
            return data

    # ------------------------------------------------------------------
    # Departments
    # ------------------------------------------------------------------
    async def get_department_list(self, id: int = ROOT_DEPARTMENT_ID) -> Dict[str, Any]:
        with self._operation("get_department_list"):
            logger.info("Fetching WeCom department list", department_id=id)
            data = await self._call(
                "GET", DEPARTMENT_SIMPLELIST_PATH, "get_department_list", params={"id": id}
            )
            logger.info("WeCom department list fetched")
            return data

    async def get_department_detail(self, id: int) -> Dict[str, Any]:
        with self._operation("get_department_detail"):
            logger.info("Fetching WeCom department detail", department_id=id)
            data = await self._call(
                "GET", DEPARTMENT_LIST_PATH, "get_department_detail", params={"id": id}
            )
            logger.info("WeCom department detail fetched")
            return data

    async def get_department_user_list(self, id: int) -> Dict[str, Any]:
        with self._operation("get_department_user_list"):
            logger.info("Fetching WeCom department members", department_id=id)
            data = await self._call(
                "GET",
                USER_SIMPLELIST_PATH,
                "get_department_user_list",
                params={"department_id": id, "fetch_child": 1},
            )
            logger.info("WeCom department members fetched")
            return data

    async def get_root_department(self) -> Dict[str, Any]:
        with self._operation("get_root_department"):
            logger.info("Fetching WeCom root department")
            root = find_root_department(await self.get_department_list(ROOT_DEPARTMENT_ID))
            logger.info("WeCom root department found", department_id=root["id"])
            return root
