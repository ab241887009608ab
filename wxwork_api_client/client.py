"""
Blocking client implementation for the WeCom corporate API.

This module defines the :class:`WxWorkClient` class which obtains an
access token from the WeCom ``gettoken`` endpoint using the corp id
and corp secret, and wraps the user, department and message endpoints.
The token is cached for its fixed two hour lifetime and fetched again
once it has expired.

Usage
-----

.. code-block:: python

    from wxwork_api_client import WxWorkClient

    client = WxWorkClient(corp_id="ww0123456789", corp_secret="shhsecret")

    root = client.get_root_department()
    members = client.get_department_user_list(root["id"])
    for member in members.get("userlist", []):
        print(member["name"])

Every method raises a subclass of
:class:`~wxwork_api_client.exceptions.WxWorkError` on failure.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

import requests
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


class WxWorkClient(BaseWxWorkClient):
    """A blocking client for the WeCom corporate API.

    See :class:`~wxwork_api_client.base.BaseWxWorkClient` for the
    constructor parameters and the configuration methods.

    Notes
    -----
    The client caches the access token and reuses it until
    :data:`~wxwork_api_client.base.TOKEN_LIFETIME` seconds after it was
    issued.  WeCom throttles ``gettoken`` calls per IP, so long running
    processes should persist the token and restore it with
    :meth:`set_access_token`.
    """

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------
    def get_access_token(self) -> str:
        """Return a valid access token, fetching a new one if needed.

        Raises
        ------
        WxWorkConfigurationError
            If ``corp_id`` or ``corp_secret`` is unset.
        WxWorkUpstreamError
            If WeCom rejects the credentials.
        """
        with self._operation("get_access_token"):
            token = self._cached_token()
            if token is not None:
                return token
            params = self._token_params()
            logger.info("Fetching WeCom access token")
            return self._store_token(self._request("GET", GET_TOKEN_PATH, params=params))

    # ------------------------------------------------------------------
    # HTTP request helpers
    # ------------------------------------------------------------------
    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
    ) -> Dict[str, Any]:
        """Perform one HTTP request and return the parsed JSON object.

        Parameters
        ----------
        method : str
            ``"GET"`` or ``"POST"``.
        path : str
            Endpoint path relative to ``base_url``.
        params : dict, optional
            Query parameters.
        json : object, optional
            A JSON-serialisable request body.

        Raises
        ------
        WxWorkTransportError
            If the request could not be completed.
        WxWorkParseError
            If the response body is not a JSON object.
        """
        url = f"{self.base_url}{path}"
        headers = {
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }
        start_time = time.time()
        logger.debug("Making WeCom request", method=method, path=path)
        try:
            response = requests.request(
                method=method,
                url=url,
                params=params,
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise WxWorkTransportError(
                "request", self._redact(f"{method} {path}: {exc}")
            ) from exc
        logger.debug(
            "WeCom request completed",
            path=path,
            status_code=response.status_code,
            duration_seconds=round(time.time() - start_time, 3),
        )
        return decode_body(response.content)

    def _call(
        self,
        method: str,
        path: str,
        operation: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
    ) -> Dict[str, Any]:
        """Call a token-protected endpoint and check the ``errcode`` envelope."""
        query = {"access_token": self.get_access_token()}
        if params:
            query.update(params)
        return check_response(self._request(method, path, params=query, json=json), operation)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    def get_user_info(self, code: str) -> Dict[str, Any]:
        """Exchange an OAuth authorization code for the user's identity.

        Returns ``{"userid": ...}``.  Users outside the corp come back
        with an ``openid`` only, which is converted to a userid with
        :meth:`get_user_info_by_openid`.
        """
        with self._operation("get_user_info"):
            logger.info("Fetching WeCom user info", code=code)
            data = self._call("GET", GET_USER_INFO_PATH, "get_user_info", params={"code": code})
            if data.get("openid") and not data.get("userid"):
                return self.get_user_info_by_openid(data["openid"])
            logger.info("WeCom user info fetched")
            return {"userid": data.get("userid")}

    def get_user_info_by_openid(self, openid: str) -> Dict[str, Any]:
        with self._operation("get_user_info_by_openid"):
            logger.info("Converting WeCom openid to userid", openid=openid)
            data = self._call(
                "POST", CONVERT_TO_USERID_PATH, "get_user_info_by_openid", json={"openid": openid}
            )
            logger.info("WeCom userid resolved")
            return data

    def get_user_detail(self, userid: str) -> Dict[str, Any]:
        with self._operation("get_user_detail"):
            logger.info("Fetching WeCom user detail", userid=userid)
            data = self._call("GET", GET_USER_PATH, "get_user_detail", params={"userid": userid})
            logger.info("WeCom user detail fetched")
            return data

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------
    def send_message(self, content: Dict[str, Any]) -> Dict[str, Any]:
        """Send an application message.

        ``content`` is passed to WeCom unchanged, so it must contain the
        recipients, ``msgtype``, ``agentid`` and the message body.  The
        response may list invalid recipients under ``invaliduser``,
        ``invalidparty`` or ``invalidtag``.
        """
        with self._operation("send_message"):
            logger.info("Sending WeCom message", msgtype=content.get("msgtype"))
            data = self._call("POST", SEND_MESSAGE_PATH, "send_message", json=content)
            logger.info("WeCom message sent", msgid=data.get("msgid"))
            return data

    # ------------------------------------------------------------------
    # Departments
    # ------------------------------------------------------------------
    def get_department_list(self, id: int = ROOT_DEPARTMENT_ID) -> Dict[str, Any]:
        """List the ids of department ``id`` and all its sub-departments."""
        with self._operation("get_department_list"):
            logger.info("Fetching WeCom department list", department_id=id)
            data = self._call(
                "GET", DEPARTMENT_SIMPLELIST_PATH, "get_department_list", params={"id": id}
            )
            logger.info("WeCom department list fetched")
            return data

    def get_department_detail(self, id: int) -> Dict[str, Any]:
        with self._operation("get_department_detail"):
            logger.info("Fetching WeCom department detail", department_id=id)
            data = self._call(
                "GET", DEPARTMENT_LIST_PATH, "get_department_detail", params={"id": id}
            )
            logger.info("WeCom department detail fetched")
            return data

    def get_department_user_list(self, id: int) -> Dict[str, Any]:
        """List the members of department ``id``, sub-departments included."""
        with self._operation("get_department_user_list"):
            logger.info("Fetching WeCom department members", department_id=id)
            data = self._call(
                "GET",
                USER_SIMPLELIST_PATH,
                "get_department_user_list",
                params={"department_id": id, "fetch_child": 1},
            )
            logger.info("WeCom department members fetched")
            return data

    def get_root_department(self) -> Dict[str, Any]:
        """Return ``{"id": ..., "name": ...}`` of the corp's root department.

        Raises
        ------
        WxWorkNotFoundError
            If no department in the list has a parent id of 0.
        """
        with self._operation("get_root_department"):
            logger.info("Fetching WeCom root department")
            root = find_root_department(self.get_department_list(ROOT_DEPARTMENT_ID))
            logger.info("WeCom root department found", department_id=root["id"])
            return root
