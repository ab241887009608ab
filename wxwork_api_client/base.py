"""
State and helpers shared by the blocking and asyncio WeCom clients.

This module holds everything about a WeCom client that does not touch
the network: the mutable corp configuration, the cached access token
and its expiry, the endpoint paths, the ``errcode`` envelope check and
the wrapping of errors with the name of the failing operation.  The
transport-specific subclasses live in :mod:`.client` and
:mod:`.async_client`.
"""

from __future__ import annotations

import json
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Mapping, Optional

import structlog

from .exceptions import (
    WxWorkConfigurationError,
    WxWorkError,
    WxWorkNotFoundError,
    WxWorkParseError,
    WxWorkUpstreamError,
)

logger = structlog.get_logger(__name__)

DEFAULT_BASE_URL = "https://qyapi.weixin.qq.com/cgi-bin"

# Per-request timeout in seconds.  WeCom gives no guidance here.
DEFAULT_TIMEOUT = 10.0

# WeCom access tokens are valid for two hours from issue.
TOKEN_LIFETIME = 7200

USER_AGENT = "wxwork-api-client/1.0.0"

GET_TOKEN_PATH = "/gettoken"
GET_USER_INFO_PATH = "/auth/getuserinfo"
CONVERT_TO_USERID_PATH = "/user/convert_to_userid"
GET_USER_PATH = "/user/get"
SEND_MESSAGE_PATH = "/message/send"
DEPARTMENT_SIMPLELIST_PATH = "/department/simplelist"
DEPARTMENT_LIST_PATH = "/department/list"
USER_SIMPLELIST_PATH = "/user/simplelist"

ROOT_DEPARTMENT_ID = 1

_CONFIG_FIELDS = ("corp_id", "corp_secret", "agent_id")


def decode_body(body: bytes) -> Dict[str, Any]:
    """Parse a raw response body into the WeCom JSON envelope.

    Raises
    ------
    WxWorkParseError
        If the body is not valid JSON or is not a JSON object.
    """
    try:
        data = json.loads(body)
    except ValueError as exc:
        raise WxWorkParseError("request", f"response body is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise WxWorkParseError(
            "request", f"expected a JSON object, got {type(data).__name__}"
        )
    return data


def check_response(data: Dict[str, Any], operation: str) -> Dict[str, Any]:
    """Raise :class:`WxWorkUpstreamError` if ``data`` carries a non-zero ``errcode``."""
    errcode = data.get("errcode")
    if errcode:
        raise WxWorkUpstreamError(
            operation,
            f"{data.get('errmsg', '')} (errcode {errcode})",
            code=errcode,
        )
    return data


def find_root_department(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Return ``{"id", "name"}`` of the department whose parent id is 0."""
    for department in payload.get("department_list") or []:
        if department.get("parentid") == 0:
            return {"id": department.get("id"), "name": department.get("name")}
    raise WxWorkNotFoundError("get_root_department", "root department not found")


class BaseWxWorkClient:
    """Configuration and token cache common to both WeCom clients.

    Parameters
    ----------
    corp_id : str, optional
        The corp (organisation) id shown in the WeCom admin console.
    corp_secret : str, optional
        The secret of the application whose permissions the client uses.
    agent_id : str, optional
        The application id.  Not used by the token request but kept so
        that message payloads can be built from the client config.
    base_url : str, optional
        Override the WeCom API root.
    timeout : float, optional
        Timeout in seconds applied to every request.  ``None`` waits
        forever.

    Notes
    -----
    Nothing is validated at construction time.  Missing credentials are
    reported when a token is first needed, so a client can be created
    early and configured later with the setters or :meth:`set_config`.
    """

    def __init__(
        self,
        *,
        corp_id: str = "",
        corp_secret: str = "",
        agent_id: str = "",
        base_url: Optional[str] = None,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
    ) -> None:
        self.corp_id = corp_id
        self.corp_secret = corp_secret
        self.agent_id = agent_id
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.timeout = timeout

        # Internal token cache
        self._access_token: Optional[str] = None
        self._token_expiry: float = 0.0  # epoch seconds when token expires

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------
    def set_corp_id(self, corp_id: str) -> None:
        self.corp_id = corp_id

    def set_corp_secret(self, corp_secret: str) -> None:
        self.corp_secret = corp_secret

    def set_agent_id(self, agent_id: str) -> None:
        self.agent_id = agent_id

    def set_config(self, config: Optional[Mapping[str, Any]] = None, **fields: Any):
        """Update several configuration fields at once.

        Only non-empty values are applied; fields that are missing or
        empty keep their current value.  Returns the client so calls
        can be chained.
        """
        values = dict(config or {})
        values.update(fields)
        unknown = set(values) - set(_CONFIG_FIELDS)
        if unknown:
            raise TypeError(f"unknown config fields: {', '.join(sorted(unknown))}")
        for name in _CONFIG_FIELDS:
            if values.get(name):
                setattr(self, name, values[name])
        return self

    def get_config(self) -> Dict[str, Any]:
        """Return the current configuration with the secret masked."""
        return {
            "corp_id": self.corp_id,
            "corp_secret": "***" if self.corp_secret else "",
            "agent_id": self.agent_id,
            "has_access_token": bool(self._access_token),
        }

    # ------------------------------------------------------------------
    # Token cache
    # ------------------------------------------------------------------
    def set_access_token(self, token: str, expires_at: Optional[float] = None) -> None:
        """Seed the cache with a token kept in the application's own storage.

        ``expires_at`` is an epoch timestamp in seconds and defaults to a
        full token lifetime from now.
        """
        self._access_token = token
        self._token_expiry = expires_at if expires_at is not None else time.time() + TOKEN_LIFETIME

    def clear_access_token(self) -> None:
        """Forget the cached token so the next call fetches a new one."""
        self._access_token = None
        self._token_expiry = 0.0

    def _cached_token(self) -> Optional[str]:
        if self._access_token and time.time() < self._token_expiry:
            return self._access_token
        return None

    def _token_params(self) -> Dict[str, str]:
        if not self.corp_id or not self.corp_secret:
            raise WxWorkConfigurationError(
                "get_access_token", "corp_id and corp_secret must be set"
            )
        logger.warning(
            "Requesting a new WeCom access token; frequent token requests can get "
            "the calling IP blocked, persist the token and reuse it"
        )
        return {"corpid": self.corp_id, "corpsecret": self.corp_secret}

    def _redact(self, text: str) -> str:
        """Mask the corp secret in ``text``; transport errors may echo the query string."""
        if self.corp_secret:
            return text.replace(self.corp_secret, "***")
        return text

    def _store_token(self, data: Dict[str, Any]) -> str:
        check_response(data, "get_access_token")
        access_token = data.get("access_token")
        if not access_token:
            raise WxWorkUpstreamError(
                "get_access_token", "response did not contain an access_token"
            )
        self._access_token = access_token
        self._token_expiry = time.time() + TOKEN_LIFETIME
        logger.info("WeCom access token acquired", expires_in_seconds=TOKEN_LIFETIME)
        logger.warning(
            "Store the WeCom access token persistently and restore it with "
            "set_access_token() to avoid repeated token requests"
        )
        return access_token

    # ------------------------------------------------------------------
    # Error wrapping
    # ------------------------------------------------------------------
    @contextmanager
    def _operation(self, name: str) -> Iterator[None]:
        """Attribute any :class:`WxWorkError` raised inside the block to ``name``."""
        try:
            yield
        except WxWorkError as exc:
            logger.error("WeCom operation failed", operation=name, error=str(exc))
            if exc.operation == name:
                raise
            raise exc.rewrap(name) from exc
