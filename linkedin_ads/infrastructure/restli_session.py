"""RestliSession - requests session that sends Rest.li query strings verbatim.

requests re-encodes `params` with form encoding, which mangles Rest.li
structural syntax such as List(...) and (key:value). The dispatcher
therefore encodes the query itself and this session appends it to the
prepared URL unchanged.
"""

from typing import Mapping, Optional

import requests
from requests import Request
from requests.adapters import HTTPAdapter

from linkedin_ads.core.constants import USER_AGENT


class RestliSession(requests.Session):
    """Session with a pooled adapter and verbatim query strings.

    Transport retries are left to the dispatcher, so the adapter is
    mounted with max_retries=0 and connection pool sizing only.
    """

    def __init__(self, pool_maxsize: int = 10):
        super().__init__()
        adapter = HTTPAdapter(pool_connections=4, pool_maxsize=pool_maxsize, max_retries=0)
        self.mount("http://", adapter)
        self.mount("https://", adapter)
        self.headers["User-Agent"] = USER_AGENT

    def request(
        self,
        method: str,
        url: str,
        raw_query: Optional[str] = None,
        data: Optional[bytes] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        allow_redirects: bool = True,
        stream: Optional[bool] = None,
        verify: Optional[bool] = None,
        cert=None,
        proxies=None,
    ) -> requests.Response:
        """Execute an HTTP request, appending raw_query without re-encoding.

        Args:
            method: HTTP method
            url: URL without the Rest.li query string
            raw_query: Already-encoded query string (no leading '?')
            data: Raw request body
            headers: HTTP headers
            timeout: Request timeout in seconds

        Returns:
            Response object
        """
        req = Request(
            method=method.upper(),
            url=url,
            headers=dict(headers or {}),
            data=data,
        )
        prep = self.prepare_request(req)

        if raw_query:
            separator = "&" if "?" in prep.url else "?"
            prep.url = f"{prep.url}{separator}{raw_query}"

        settings = self.merge_environment_settings(prep.url, proxies or {}, stream, verify, cert)
        send_kwargs = {
            "timeout": timeout,
            "allow_redirects": allow_redirects,
        }
        send_kwargs.update(settings)

        return self.send(prep, **send_kwargs)
