"""
Python client for the WeCom (WeChat Work, 企业微信) corporate API.

This package provides :class:`WxWorkClient`, a blocking client built
on ``requests``, and :class:`AsyncWxWorkClient`, its asyncio twin
built on ``httpx``.  Both obtain an access token from the corp id and
corp secret, cache it for its two hour lifetime and wrap the user,
department and message endpoints.

Examples
--------

```python
from wxwork_api_client import WxWorkClient

client = WxWorkClient()
client.set_config(corp_id="ww0123456789", corp_secret="YOUR_SECRET", agent_id="1000002")

client.send_message({
    "touser": "zhangsan",
    "msgtype": "text",
    "agentid": 1000002,
    "text": {"content": "Build finished"},
})
```

Notes
-----
WeCom limits how often ``gettoken`` may be called and can block the
calling IP.  Applications that restart often should store the token
and hand it back with ``set_access_token``.
"""

from .async_client import AsyncWxWorkClient
from .base import DEFAULT_BASE_URL, DEFAULT_TIMEOUT, TOKEN_LIFETIME
from .client import WxWorkClient
from .exceptions import (
    WxWorkConfigurationError,
    WxWorkError,
    WxWorkNotFoundError,
    WxWorkParseError,
    WxWorkTransportError,
    WxWorkUpstreamError,
)

__version__ = "1.0.0"

__all__ = [
    "AsyncWxWorkClient",
    "DEFAULT_BASE_URL",
    "DEFAULT_TIMEOUT",
    "TOKEN_LIFETIME",
    "WxWorkClient",
    "WxWorkConfigurationError",
    "WxWorkError",
    "WxWorkNotFoundError",
    "WxWorkParseError",
    "WxWorkTransportError",
    "WxWorkUpstreamError",
]
