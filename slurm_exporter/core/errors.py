"""Failure taxonomy for upstream scrapes.

Every way a single endpoint fetch can go wrong is one of four kinds:

  connect  — the upstream could not be reached, or did not answer in time
  status   — the upstream answered with something other than 200
  read     — the response body stream broke part-way through
  parse    — the body is not valid text exposition format

The fetcher raises these internally and converts them into a Failure
outcome at its boundary, so none of them ever aborts a whole scrape.
The kind only feeds logs and diagnostics; the aggregator treats every
kind the same way (skip the endpoint for this cycle).
"""

from __future__ import annotations

from enum import Enum


class FailureKind(str, Enum):
    CONNECT = "connect"
    STATUS = "status"
    READ = "read"
    PARSE = "parse"


class ScrapeError(Exception):
    """Base class for everything the fetcher reports as a per-endpoint failure."""

    kind: FailureKind


class ConnectFailure(ScrapeError):
    kind = FailureKind.CONNECT


class UnexpectedStatus(ScrapeError):
    kind = FailureKind.STATUS

    def __init__(self, status_code: int) -> None:
        super().__init__(f"unexpected status code: {status_code}")
        self.status_code = status_code


class ReadFailure(ScrapeError):
    kind = FailureKind.READ


class MalformedExposition(ScrapeError):
    """Raised by the parser; carries the offending line and why it was rejected."""

    kind = FailureKind.PARSE

    def __init__(self, reason: str, *, lineno: int = 0, line: str = "") -> None:
        location = f"line {lineno}: " if lineno else ""
        super().__init__(f"{location}{reason}")
        self.reason = reason
        self.lineno = lineno
        self.line = line
