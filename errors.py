# errors.py
"""
Exception taxonomy shared by the fetch client, the scrapers and the API layer.

Every error raised out of a public scrape operation is a ScrapeError, so the
route layer can map it to a status code without inspecting messages.
"""
from typing import List, Optional


class ScrapeError(Exception):
    """Base class for upstream and extraction failures."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def wrap(self, prefix: str) -> "ScrapeError":
        """Return a copy of this error with a context prefix, keeping its type."""
        wrapped = self.__class__.__new__(self.__class__)
        wrapped.__dict__.update(self.__dict__)
        wrapped.message = f"{prefix}: {self.message}"
        wrapped.args = (wrapped.message,)
        return wrapped

    def __str__(self) -> str:
        return self.message


class UpstreamHTTPError(ScrapeError):
    status_code = 502

    def __init__(self, status: int, url: str, message: Optional[str] = None):
        super().__init__(message or f"HTTP error! status: {status} ({url})")
        self.status = status
        self.url = url

    @property
    def retryable(self) -> bool:
        return self.status == 429 or self.status >= 500


class NotFoundError(UpstreamHTTPError):
    status_code = 404

    def __init__(self, url: str, message: Optional[str] = None):
        super().__init__(404, url, message)


class AccessDeniedError(UpstreamHTTPError):
    status_code = 502

    def __init__(self, url: str):
        super().__init__(
            403,
            url,
            "Access denied (403). The website may be blocking automated requests.",
        )


class UpstreamTimeoutError(ScrapeError):
    status_code = 503


class UpstreamConnectionError(ScrapeError):
    status_code = 503


class ExtractionEmptyError(ScrapeError):
    status_code = 404


class AggregateSourceError(ScrapeError):
    status_code = 404

    def __init__(self, message: str, errors: List[BaseException]):
        details = "; ".join(str(e) for e in errors)
        super().__init__(f"{message} ({details})" if details else message)
        self.errors = list(errors)
