"""
Breach Checker Module

Looks up passwords in the Pwned Passwords range API using k-anonymity:
only the first five hex characters of the SHA-1 digest leave the process,
and matching happens locally against the returned suffix list.

The lookup result is typed: BreachInfo when the service answered,
BreachUnavailable when it did not. The check_breach helpers collapse
BreachUnavailable into "not compromised" (fail-open) after logging it, so a
third-party outage never blocks registration or a password change.
"""

import hashlib
import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Union

import httpx

from ..config import BREACH_API_URL, BREACH_TIMEOUT_SECONDS, BREACH_USER_AGENT


logger = logging.getLogger(__name__)

PREFIX_LENGTH = 5


@dataclass(frozen=True)
class BreachInfo:
    """Answer from the breach service."""
    is_compromised: bool
    count: int = 0


@dataclass(frozen=True)
class BreachUnavailable:
    """The breach service could not be consulted."""
    reason: str


BreachLookup = Union[BreachInfo, BreachUnavailable]

NOT_COMPROMISED = BreachInfo(is_compromised=False, count=0)


def sha1_prefix_suffix(password: str) -> Tuple[str, str]:
    """
    Split the uppercase SHA-1 hex digest of a password.

    Returns:
        (5-character prefix, 35-character suffix)
    """
    digest = hashlib.sha1(password.encode('utf-8')).hexdigest().upper()  # noqa: S324 - protocol requirement
    return digest[:PREFIX_LENGTH], digest[PREFIX_LENGTH:]


def parse_range_response(body: str, suffix: str) -> int:
    """
    Find the breach count for a suffix in a range response.

    Lines are "SUFFIX:COUNT". Padding rows (count 0) and malformed lines
    are ignored.

    Returns:
        Reported count, 0 when the suffix is absent
    """
    suffix = suffix.upper()
    for line in body.splitlines():
        candidate, sep, count = line.strip().partition(':')
        if not sep or candidate.upper() != suffix:
            continue
        try:
            return int(count.strip())
        except ValueError:
            logger.warning("Malformed breach count in range response")
            return 0
    return 0


class BreachChecker:
    """
    k-anonymity breach lookup client.

    Example:
        >>> checker = BreachChecker()
        >>> checker.check_breach("password123")
        BreachInfo(is_compromised=True, count=...)
    """

    def __init__(self,
                 api_url: str = BREACH_API_URL,
                 timeout: float = BREACH_TIMEOUT_SECONDS,
                 user_agent: str = BREACH_USER_AGENT,
                 transport: Optional[httpx.BaseTransport] = None,
                 event_logger=None):
        """
        Args:
            api_url: Range endpoint; the prefix is appended to it
            timeout: Total request timeout in seconds
            user_agent: User-Agent identifying this application
            transport: Optional httpx transport (tests use httpx.MockTransport)
            event_logger: Optional EventLogger notified of outages
        """
        self._api_url = api_url if api_url.endswith('/') else api_url + '/'
        self._timeout = timeout
        self._headers = {'User-Agent': user_agent, 'Add-Padding': 'true'}
        self._transport = transport
        self._events = event_logger

    @classmethod
    def from_settings(cls, settings, transport: Optional[httpx.BaseTransport] = None,
                      event_logger=None) -> 'BreachChecker':
        """Build a checker from AuthSettings.breach_* values."""
        return cls(
            api_url=settings.breach_api_url,
            timeout=settings.breach_timeout_seconds,
            user_agent=settings.breach_user_agent,
            transport=transport,
            event_logger=event_logger,
        )

    def _client_kwargs(self) -> dict:
        kwargs = {'timeout': self._timeout, 'headers': self._headers}
        if self._transport is not None:
            kwargs['transport'] = self._transport
        return kwargs

    def lookup(self, password: str) -> BreachLookup:
        """
        Query the breach service (blocking).

        Returns:
            BreachInfo on a successful answer, BreachUnavailable otherwise
        """
        prefix, suffix = sha1_prefix_suffix(password)
        try:
            with httpx.Client(**self._client_kwargs()) as client:
                response = client.get(self._api_url + prefix)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            return BreachUnavailable(reason=type(exc).__name__)
        return self._to_info(response.text, suffix)

    async def lookup_async(self, password: str) -> BreachLookup:
        """
        Query the breach service without blocking the event loop.

        Cancelling the awaiting task aborts the request; CancelledError is
        propagated to the caller.
        """
        prefix, suffix = sha1_prefix_suffix(password)
        try:
            async with httpx.AsyncClient(**self._client_kwargs()) as client:
                response = await client.get(self._api_url + prefix)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            return BreachUnavailable(reason=type(exc).__name__)
        return self._to_info(response.text, suffix)

    def check_breach(self, password: str) -> BreachInfo:
        """Fail-open lookup: an unreachable service reports not compromised."""
        return self._fail_open(self.lookup(password))

    async def check_breach_async(self, password: str) -> BreachInfo:
        """Async fail-open lookup."""
        return self._fail_open(await self.lookup_async(password))

    @staticmethod
    def _to_info(body: str, suffix: str) -> BreachInfo:
        count = parse_range_response(body, suffix)
        if count > 0:
            logger.warning("Password found in breach corpus (%d occurrences)", count)
            return BreachInfo(is_compromised=True, count=count)
        return NOT_COMPROMISED

    def _fail_open(self, result: BreachLookup) -> BreachInfo:
        if isinstance(result, BreachUnavailable):
            logger.warning("Breach lookup unavailable (%s); continuing without it", result.reason)
            if self._events is not None:
                self._events.log_breach_unavailable(result.reason)
            return NOT_COMPROMISED
        return result
