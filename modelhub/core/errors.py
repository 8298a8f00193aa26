"""Error taxonomy for the chat core and mapping of upstream failures to
human-readable messages.

Anything raised before the chunked response is opened becomes an HTTP error;
once the body is open, `describe_error` supplies the text that goes into it.
"""

import httpx


class EndpointNotFoundError(Exception):
    """No endpoint (with platform and credential) exists for the given id."""
    pass


class UnsupportedOperationError(Exception):
    """The provider cannot perform the requested operation (e.g. image generation)."""
    pass


class NoImageDataError(Exception):
    """Upstream answered successfully but carried no image."""
    pass


class StreamTimeoutError(Exception):
    """An upstream call did not finish before its deadline."""
    pass


class UpstreamHTTPError(Exception):
    """Upstream answered with a non-2xx status.

    Attributes:
        status: HTTP status code.
        detail: `error.message` from the upstream JSON body, if present.
    """

    def __init__(self, status: int, detail: str | None = None):
        self.status = status
        self.detail = detail
        super().__init__(f"Upstream returned {status}" + (f": {detail}" if detail else ""))


def extract_error_detail(response: httpx.Response) -> str | None:
    """Pull `error.message` (or a string `error`) out of an upstream error body."""
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict):
        return error.get("message")
    if isinstance(error, str):
        return error
    return None


def describe_status(status: int, detail: str | None = None) -> str:
    """Map an upstream status code to the message shown to the caller."""
    if status == 401:
        message = "🔑 Authentication Error: Invalid API key."
        details = "Please check your API key in the endpoint configuration."
    elif status == 400:
        message = "⚠️ Invalid Request: There was a problem with your request."
        details = detail or "Please check your model name and request parameters."
    elif status == 429:
        message = "🚦 Rate Limit Exceeded: Too many requests."
        details = "Please wait a moment before trying again. Consider upgrading your API plan for higher limits."
    elif status == 404:
        message = "🔍 Model Not Found: The specified model is not available."
        details = "Please check your model name or try a different model."
    elif status == 500:
        message = "🔧 Server Error: The API service is experiencing issues."
        details = "Please try again in a few moments."
    else:
        message = f"❌ API Error ({status}): Request failed."
        details = detail or ""
    return f"{message}\n\n{details}" if details else message


def describe_error(exc: Exception) -> str:
    """Turn any failure of an upstream call into caller-facing text."""
    if isinstance(exc, UpstreamHTTPError):
        return describe_status(exc.status, exc.detail)
    if isinstance(exc, httpx.HTTPStatusError):
        return describe_status(exc.response.status_code)
    if isinstance(exc, httpx.ConnectError):
        return ("🌐 Connection Error: Unable to reach the API server.\n\n"
                "Please check your internet connection and base URL.")
    if isinstance(exc, (httpx.TimeoutException, StreamTimeoutError)):
        return ("⏱️ Timeout Error: The request took too long.\n\n"
                "Please try again with a shorter message or check your connection.")
    if isinstance(exc, httpx.TransportError):
        return ("🌐 Stream Error: The connection to the API server was interrupted.\n\n"
                "Please try again.")
    if isinstance(exc, (UnsupportedOperationError, NoImageDataError)):
        return str(exc)
    return "Sorry, there was an error processing your request."


def one_line(message: str) -> str:
    """Collapse a multi-line message so it fits a single protocol line."""
    return " ".join(part.strip() for part in message.splitlines() if part.strip())
