"""HTTP(S) endpoint check: timed attempts, response classification, verdict.

A check issues ``attempts`` sequential GET requests against one endpoint,
classifies every response (status code, required/forbidden body text) and
concludes healthy, degraded (median RTT above threshold) or down (any
attempt failed). Only configuration problems raise; everything that goes
wrong on the wire ends up in the Result.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Annotated, Any, Literal

import httpx
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

from ..results import Attempt, Result, Status, compute_stats, format_duration
from .transport import build_client, parse_target

logger = logging.getLogger(__name__)

_DURATION_SEGMENT = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9, "us": 1e-6, "µs": 1e-6, "ms": 1e-3, "s": 1.0, "m": 60.0, "h": 3600.0,
}


def parse_duration(value: Any) -> Any:
    """Accept seconds as a number, or unit strings like ``200ms`` / ``1m30s``."""
    if not isinstance(value, str):
        return value
    text = value.strip()
    try:
        return float(text)
    except ValueError:
        pass
    segments = _DURATION_SEGMENT.findall(text)
    if not segments or "".join(n + u for n, u in segments) != text:
        raise ValueError(f"invalid duration {value!r}")
    return sum(float(n) * _DURATION_UNITS[u] for n, u in segments)


Duration = Annotated[float, BeforeValidator(parse_duration), Field(ge=0)]

# RFC 7230 token
_HEADER_NAME = re.compile(r"[!#$%&'*+.^_`|~0-9A-Za-z-]+")


# ── Checker ──────────────────────────────────────────────────────────────────


class HTTPChecker(BaseModel):
    """Configuration of one HTTP endpoint check, read-only per invocation."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    type: Literal["http"] = "http"
    name: str = Field(alias="endpoint_name", min_length=1)
    url: str = Field(alias="endpoint_url", min_length=1)

    up_status: int = 200
    # Zero disables the degraded classification
    threshold_rtt: Duration = 0.0

    # If either is set the whole body is read into memory
    must_contain: str = ""
    must_not_contain: str = ""

    attempts: int = 1
    attempt_spacing: Duration = 0.0

    tls_skip_verify: bool = False
    tls_ca_file: str = ""

    headers: dict[str, list[str]] = Field(default_factory=dict)

    @field_validator("attempts")
    @classmethod
    def _at_least_one_attempt(cls, v: int) -> int:
        return max(v, 1)

    @field_validator("headers", mode="before")
    @classmethod
    def _header_values_as_lists(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return {k: [val] if isinstance(val, str) else val for k, val in v.items()}
        return v

    @field_validator("headers")
    @classmethod
    def _headers_sendable(cls, v: dict[str, list[str]]) -> dict[str, list[str]]:
        for key, values in v.items():
            if not _HEADER_NAME.fullmatch(key):
                raise ValueError(f"invalid header name {key!r}")
            for val in values:
                if not val.isascii() or any(c in val for c in "\r\n\0"):
                    raise ValueError(f"header {key!r} has a value that cannot be sent: {val!r}")
        return v

    def check(self, client: httpx.Client | None = None) -> Result:
        """Run the check and return its verdict.

        A caller-supplied client is used as-is and left open. Otherwise a
        client is built for this invocation and closed afterwards.
        ConfigurationError is the only exception raised.
        """
        parse_target(self.url)
        timestamp = datetime.now(timezone.utc).isoformat()

        if client is not None:
            attempts = self.do_checks(client, self.build_request(client))
        else:
            with build_client(self.url, self.tls_skip_verify, self.tls_ca_file) as own_client:
                attempts = self.do_checks(own_client, self.build_request(own_client))

        return conclude(self.name, self.url, attempts, self.threshold_rtt, timestamp=timestamp)

    def build_request(self, client: httpx.Client) -> httpx.Request:
        """GET request for the target with the configured headers.

        A ``Host`` header (any case) overrides the request's Host instead of
        being sent as an extra header.
        """
        headers: dict[str, str] = {}
        host = ""
        for key, values in self.headers.items():
            if key.lower() == "host":
                if values:
                    host = values[0]
                continue
            headers[key] = ", ".join(values)

        request = client.build_request("GET", self.url, headers=headers)
        if host:
            request.headers["Host"] = host
        return request

    def do_checks(self, client: httpx.Client, request: httpx.Request) -> tuple[Attempt, ...]:
        """Execute ``request`` once per attempt, strictly in sequence."""
        attempts: list[Attempt] = []
        for i in range(self.attempts):
            start = time.perf_counter()
            try:
                response = client.send(request, stream=True)
            except httpx.HTTPError as e:
                attempt = Attempt(rtt=time.perf_counter() - start, error=f"{type(e).__name__}: {e}")
            else:
                rtt = time.perf_counter() - start
                try:
                    attempt = Attempt(rtt=rtt, error=self.check_down(response))
                finally:
                    response.close()

            attempts.append(attempt)
            logger.debug(
                "%s attempt %d/%d: %s (%s)",
                self.name, i + 1, self.attempts,
                attempt.error or "ok", format_duration(attempt.rtt),
            )

            if self.attempt_spacing > 0 and i < self.attempts - 1:
                time.sleep(self.attempt_spacing)
        return tuple(attempts)

    def check_down(self, response: httpx.Response) -> str:
        """Return why ``response`` counts as down, or ``""`` if it passes.

        Latency is not considered here.
        """
        if response.status_code != self.up_status:
            return f"response status {response.status_code} {response.reason_phrase}".rstrip()

        if not self.must_contain and not self.must_not_contain:
            return ""

        try:
            response.read()
            body = response.text
        except httpx.HTTPError as e:
            return f"reading response body: {e}"

        if self.must_contain and self.must_contain not in body:
            return f"response does not contain '{self.must_contain}'"
        if self.must_not_contain and self.must_not_contain in body:
            return f"response contains '{self.must_not_contain}'"
        return ""


# ── Verdict ──────────────────────────────────────────────────────────────────


def conclude(
    title: str,
    endpoint: str,
    attempts: Sequence[Attempt],
    threshold_rtt: float = 0.0,
    *,
    timestamp: str,
) -> Result:
    """Aggregate attempts into a verdict.

    Any failed attempt means down, and latency is then ignored. Otherwise a
    median RTT above a non-zero threshold means degraded. Stats cover the
    passing attempts and are filled in for every verdict. ``timestamp`` is
    when the check started; nothing here reads the clock.
    """
    times = tuple(attempts)
    stats = compute_stats(times)
    status = Status.HEALTHY
    notice = ""

    for i, attempt in enumerate(times, start=1):
        if attempt.failed:
            status = Status.DOWN
            notice = f"attempt {i} failed: {attempt.error}"
            break
    else:
        if threshold_rtt > 0 and stats.median > threshold_rtt:
            status = Status.DEGRADED
            notice = f"median round trip time exceeded threshold ({format_duration(threshold_rtt)})"

    if status is not Status.HEALTHY:
        rtts = " ".join(format_duration(a.rtt) for a in times)
        notice = f"{notice} - Number of attempts = {len(times)} ({rtts})"

    return Result(
        title=title,
        endpoint=endpoint,
        times=times,
        threshold_rtt=threshold_rtt,
        stats=stats,
        status=status,
        notice=notice,
        timestamp=timestamp,
    )
