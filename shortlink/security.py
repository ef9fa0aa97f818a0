"""Security pre-check run before a target URL is accepted.

The check is two composable parts so each can be bounded on its own:

- ``PolicyCheck``: pure and fast. Scheme deny-list, syntactic validity,
  http/https only, phishing look-alike hosts. Only this part can decide that
  a URL is unsafe.
- ``ReachabilityProbe``: an HTTP HEAD request with a hard timeout. It reports
  what it saw; a timeout or transport error is "unverifiable", never unsafe.

Flow Diagram — SecurityChecker.check()
======================================
::
    ┌─────────────┐
    │ PolicyCheck │
    └──────┬──────┘
    safe?  │
    ┌──────┴──────┐
    │ NO           │ YES
    ▼              ▼
┌─────────┐  ┌─────────────┐
│ reject  │  │ probe       │ (optional, bounded)
│ +reason │  └──────┬──────┘
└─────────┘         ▼
       reachable / unverifiable → safe
       unreachable (HTTP ≥ 400) → safe, unless reject_unreachable

How to Use
===========
::
    checker = SecurityChecker(PolicyCheck(), logger, probe=ReachabilityProbe(client, timeout=5.0))
    verdict = await checker.check("https://example.com")
    if not verdict.safe:
        raise UnsafeURL(verdict.reason)
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from urllib.parse import urlsplit

import httpx
import validators
from prometheus_client import Counter

from shortlink.enums import Reachability

__all__ = ["SecurityVerdict", "PolicyCheck", "ReachabilityProbe", "SecurityChecker"]

SECURITY_VERDICTS_TOTAL = Counter(
    "shortlink_security_verdicts_total",
    "Security pre-check verdicts",
    ["safe", "reachability"],
)

UNSAFE_SCHEME_PATTERN = re.compile(r"^\s*(javascript|data|vbscript|file|ftp|mailto|tel|sms):", re.IGNORECASE)

PHISHING_PATTERNS = [
    re.compile(r"paypal.*\.com.*\.com", re.IGNORECASE),
    re.compile(r"google.*\.com.*\.com", re.IGNORECASE),
    re.compile(r"facebook.*\.com.*\.com", re.IGNORECASE),
    re.compile(r"amazon.*\.com.*\.com", re.IGNORECASE),
    re.compile(r"bank.*\.com.*\.com", re.IGNORECASE),
]

ALLOWED_SCHEMES = frozenset({"http", "https"})


@dataclass(frozen=True)
class SecurityVerdict:
    safe: bool
    reason: str
    reachability: Reachability = Reachability.SKIPPED


class PolicyCheck:
    """Pattern and syntax policy; no I/O."""

    def check(self, url: str) -> SecurityVerdict:
        if UNSAFE_SCHEME_PATTERN.match(url):
            return SecurityVerdict(False, "Potentially unsafe URL scheme detected")
        if not validators.url(url):
            return SecurityVerdict(False, "Invalid URL format")
        if urlsplit(url).scheme.lower() not in ALLOWED_SCHEMES:
            return SecurityVerdict(False, "Potentially unsafe URL scheme detected")
        for pattern in PHISHING_PATTERNS:
            if pattern.search(url):
                return SecurityVerdict(False, "Potential phishing URL detected")
        return SecurityVerdict(True, "URL appears safe")


class ReachabilityProbe:
    """HEAD request against the target, bounded by ``timeout`` seconds."""

    def __init__(self, client: httpx.AsyncClient, timeout: float = 5.0):
        self._client = client
        self._timeout = timeout

    async def probe(self, url: str) -> tuple[Reachability, int | None]:
        try:
            async with asyncio.timeout(self._timeout):
                response = await self._client.head(url, follow_redirects=True, timeout=self._timeout)
        except (TimeoutError, httpx.HTTPError, httpx.InvalidURL):
            return Reachability.UNVERIFIABLE, None
        if response.status_code >= 400:
            return Reachability.UNREACHABLE, response.status_code
        return Reachability.REACHABLE, response.status_code


class SecurityChecker:
    def __init__(
        self,
        policy: PolicyCheck,
        logger: logging.Logger | logging.LoggerAdapter,
        probe: ReachabilityProbe | None = None,
        reject_unreachable: bool = False,
    ):
        self._policy = policy
        self._probe = probe
        self._logger = logger
        self._reject_unreachable = reject_unreachable

    async def check(self, url: str) -> SecurityVerdict:
        verdict = self._policy.check(url)
        if verdict.safe and self._probe is not None:
            verdict = await self._apply_probe(url)
        SECURITY_VERDICTS_TOTAL.labels(safe=str(verdict.safe).lower(), reachability=verdict.reachability).inc()
        if not verdict.safe:
            self._logger.warning(f"URL rejected by security pre-check: {url} ({verdict.reason})")
        return verdict

    async def _apply_probe(self, url: str) -> SecurityVerdict:
        reachability, status = await self._probe.probe(url)
        if reachability is Reachability.UNVERIFIABLE:
            self._logger.info(f"Reachability probe failed for {url}; treating as unverifiable")
            return SecurityVerdict(True, "URL appears safe (reachability unverifiable)", reachability)
        if reachability is Reachability.UNREACHABLE:
            if self._reject_unreachable:
                return SecurityVerdict(False, "URL is not accessible", reachability)
            return SecurityVerdict(True, f"URL appears safe (target answered HTTP {status})", reachability)
        return SecurityVerdict(True, "URL appears safe", reachability)
