"""
Error taxonomy for calls to the upstream services.

- UpstreamError: the upstream answered with a non-success status. Never
  retried, except for 429 which the governor retries before giving up.
- RetriesExhaustedError: the retry budget ran out without a final answer.
- UpstreamContractError: the upstream answered 2xx but the body does not
  have the shape we rely on.

Cache misses are not errors: readers return None and the caller rebuilds.
"""


class UpstreamError(Exception):
    """
    Raised when an upstream request fails.

    Attributes:
        upstream: Name of the governor that issued the request ("scryfall", "csb")
        status_code: HTTP status of the failed response, None when there was none
        reason: HTTP reason phrase
        body: Response body text, as returned by the upstream
    """

    def __init__(
        self,
        upstream: str,
        status_code: int | None = None,
        reason: str = "",
        body: str = "",
        message: str | None = None,
    ):
        self.upstream = upstream
        self.status_code = status_code
        self.reason = reason
        self.body = body
        if message is None:
            message = f"{upstream} request failed: {status_code} {reason} - {body}"
        super().__init__(message)


class RetriesExhaustedError(UpstreamError):
    """Raised when every attempt in the retry budget was rate-limited."""

    def __init__(self, upstream: str, attempts: int, body: str = ""):
        self.attempts = attempts
        super().__init__(
            upstream,
            status_code=429,
            reason="Too Many Requests",
            body=body,
            message=f"{upstream} request failed: exhausted retries after {attempts} attempts",
        )


class UpstreamContractError(UpstreamError):
    """Raised when a successful response does not match the expected shape."""

    def __init__(self, upstream: str, detail: str):
        super().__init__(upstream, message=f"{upstream} returned an unexpected response: {detail}")
