"""
Custom exception types for the WeCom API client.

Every error raised by the client derives from :class:`WxWorkError` and
records the name of the operation that failed.  The subclasses let
callers distinguish a missing configuration from a network failure, an
unreadable response body or an error reported by WeCom itself.
"""

from __future__ import annotations

from typing import Optional


class WxWorkError(Exception):
    """Base exception for all WeCom client errors.

    Parameters
    ----------
    operation : str
        Name of the client operation that failed, e.g. ``"get_access_token"``.
    message : str
        Description of the root cause.
    code : int, optional
        The ``errcode`` reported by WeCom, when there is one.
    """

    def __init__(self, operation: str, message: str, *, code: Optional[int] = None) -> None:
        self.operation = operation
        self.message = message
        self.code = code
        super().__init__(f"{operation} failed: {message}")

    def rewrap(self, operation: str) -> "WxWorkError":
        """Return a copy of this error attributed to an enclosing operation."""
        return type(self)(operation, str(self), code=self.code)


class WxWorkConfigurationError(WxWorkError):
    """Raised when the corp id or corp secret has not been configured."""


class WxWorkTransportError(WxWorkError):
    """Raised when the HTTP request could not be completed."""


class WxWorkParseError(WxWorkError):
    """Raised when a response body is not a JSON object."""


class WxWorkUpstreamError(WxWorkError):
    """Raised when WeCom answers with a non-zero ``errcode``."""


class WxWorkNotFoundError(WxWorkError):
    """Raised when an expected record is missing from a WeCom response."""
