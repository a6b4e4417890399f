"""HTTP request tool."""

from typing import Any

import httpx

from deskpilot import __version__
from deskpilot.logging import get_logger
from deskpilot.tools.files import MAX_OUTPUT, truncate
from deskpilot.tools.registry import Tool, ToolResult

log = get_logger(__name__)

_METHODS = {"GET", "POST", "PUT", "DELETE", "PATCH"}


class HttpRequestTool(Tool):
    """Make an HTTP request and return status plus body."""

    name = "http_request"
    required = ("url",)
    timeout_seconds = 20.0

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 15.0):
        self.timeout = timeout
        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": f"Deskpilot-Agent/{__version__}"},
        )

    async def execute(
        self,
        url: str = "",
        method: str = "GET",
        headers: dict[str, Any] | None = None,
        body: Any = None,
        **kwargs: Any,
    ) -> ToolResult:
        """Perform the request.

        Args:
            url: Full URL
            method: HTTP method
            headers: Extra request headers
            body: Request body for POST/PUT/PATCH

        Returns:
            ToolResult with "HTTP <status>" followed by the body
        """
        url = str(url or "").strip()
        if not url:
            return ToolResult(success=False, output="No URL provided.")
        verb = str(method or "GET").upper()
        if verb not in _METHODS:
            return ToolResult(success=False, output=f"Unsupported HTTP method: {verb}")
        request_headers = {str(k): str(v) for k, v in (headers or {}).items()} if isinstance(headers, dict) else {}
        content = str(body) if body else None

        try:
            log.info("HTTP request", method=verb, url=url)
            response = await self.client.request(verb, url, headers=request_headers, content=content)
        except httpx.TimeoutException:
            return ToolResult(success=False, output=f"Request timed out ({int(self.timeout)}s).")
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            return ToolResult(success=False, output=f"Request error: {e}")

        text = response.text[: MAX_OUTPUT + 1]
        return ToolResult(
            success=response.status_code < 400,
            output=truncate(f"HTTP {response.status_code}\n\n{text}"),
        )

    async def close(self) -> None:
        await self.client.aclose()
