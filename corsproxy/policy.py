"""Decide whether a target may be forwarded to."""
import logging
from dataclasses import dataclass
from typing import Iterable, Optional
from urllib.parse import SplitResult

from corsproxy.config import ProxySettings
from corsproxy.netaddr import is_private_addr
from corsproxy.targets import Allowlist
from corsproxy.urls import ParseError, host_port, normalize_parse_url

logger = logging.getLogger("corsproxy.policy")

ALLOWED_TARGET_SCHEMES = ("http", "https")


class TargetError(Exception):
    """A target was rejected. Terminal for the request; never retried."""

    status_code = 403
    detail = "Forbidden"
    reason = "forbidden"


class InvalidTargetURL(TargetError):
    status_code = 400
    detail = "Invalid URL"
    reason = "invalid_url"


class SchemeError(TargetError):
    status_code = 400
    detail = "Invalid URL"
    reason = "unsupported_scheme"


class PrivateNetworkDenied(TargetError):
    reason = "private_network"


class NotAllowlisted(TargetError):
    reason = "not_allowlisted"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    status_code: int
    reason: Optional[str] = None


class TargetPolicy:
    """
    Authorization for proxy targets, built once at startup and only read afterwards.

    When private network targets are disabled and implicit_private_targets is on, an allowlist
    entry whose host is itself a private/loopback IP literal enables private targets.
    """

    def __init__(
        self,
        allowed_targets: Iterable[str] = (),
        allow_private_network_target: bool = False,
        implicit_private_targets: bool = True,
    ) -> None:
        self._allowlist = Allowlist.compile(allowed_targets)
        allow_private = allow_private_network_target
        if not allow_private and implicit_private_targets:
            private_hosts = self._allowlist.private_targets()
            if private_hosts:
                logger.info(
                    "Private network targets enabled by allowlist entries: %s",
                    ", ".join(private_hosts),
                )
                allow_private = True
        self._allow_private_network_target = allow_private

        if self._allowlist.allow_all and self._allow_private_network_target:
            logger.warning("Private network targets have been allowed without any configured allowed target rule!")

    @classmethod
    def from_settings(cls, settings: ProxySettings) -> "TargetPolicy":
        return cls(
            allowed_targets=settings.allowed_targets,
            allow_private_network_target=settings.allow_private_network_target,
            implicit_private_targets=settings.implicit_private_targets,
        )

    @property
    def allowlist(self) -> Allowlist:
        return self._allowlist

    @property
    def allow_private_network_target(self) -> bool:
        return self._allow_private_network_target

    def check(self, target: str) -> SplitResult:
        """Return the normalized target URL, or raise a TargetError subclass."""
        try:
            remote = normalize_parse_url(target)
        except ParseError as exc:
            raise InvalidTargetURL(str(exc)) from exc

        if remote.scheme not in ALLOWED_TARGET_SCHEMES:
            raise SchemeError(f"unsupported scheme {remote.scheme!r}")

        if not remote.hostname:
            raise InvalidTargetURL(f"missing host in {target!r}")

        if not self._allow_private_network_target:
            private, parsed = is_private_addr(host_port(remote))
            if parsed and private:
                raise PrivateNetworkDenied(f"private network target {host_port(remote)!r}")

        # Rules are compiled without query strings, so targets are matched the same way.
        if not self._allowlist.is_allowed(remote.geturl().split("?", 1)[0]):
            raise NotAllowlisted(f"target {target!r} is not in the allowlist")
        return remote

    def authorize(self, target: str) -> Decision:
        try:
            self.check(target)
        except TargetError as exc:
            return Decision(allowed=False, status_code=exc.status_code, reason=exc.reason)
        return Decision(allowed=True, status_code=200)
