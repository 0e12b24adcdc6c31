"""
Allowlist of proxy targets.

Each configured entry compiles to one rule:
  "*"                          -> AllowAll (overrides every other entry)
  "http://example.com"         -> Exact: the origin itself and any path below it
  "http://*.example.com"       -> Wildcard: one '*' standing for any text
"""
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple, Union

from corsproxy.netaddr import is_private_addr
from corsproxy.urls import ParseError, host_port, normalize_parse_url, strip_url_query


class InvalidAllowedTarget(ValueError):
    """Raised at startup for an allowed-target entry that cannot be compiled."""


@dataclass(frozen=True)
class AllowAll:
    pass


@dataclass(frozen=True)
class Exact:
    target: str
    """Normalized target with one trailing '/' removed."""


@dataclass(frozen=True)
class Wildcard:
    prefix: str
    suffix: str


AllowRule = Union[AllowAll, Exact, Wildcard]


def compile_rule(raw: str) -> Optional[AllowRule]:
    """Compile one configured entry. Blank entries yield None."""
    entry = raw.strip()
    if not entry:
        return None
    if entry == "*":
        return AllowAll()
    if entry.count("*") > 1:
        raise InvalidAllowedTarget(f"Invalid target {raw!r} in allowed targets: only one '*' is supported")
    try:
        normalized = strip_url_query(entry)
    except ParseError as exc:
        raise InvalidAllowedTarget(f"Invalid target {raw!r} in allowed targets: {exc}") from exc

    if "*" in normalized:
        prefix, _, suffix = normalized.partition("*")
        return Wildcard(prefix=prefix, suffix=suffix)
    if normalized.endswith("/"):
        normalized = normalized[:-1]
    return Exact(target=normalized)


def _wildcard_match(rule: Wildcard, target: str) -> bool:
    if len(target) < len(rule.prefix) + len(rule.suffix):
        return False
    if not target.startswith(rule.prefix):
        return False
    rest = target[len(rule.prefix):]
    # The suffix may end the target or be followed by a path separator.
    # TODO: require a real boundary before the suffix; "/sub3" currently also matches inside "/x/sub3/" segments.
    return rest.endswith(rule.suffix) or (rule.suffix + "/") in rest


def rule_matches(rule: AllowRule, target: str) -> bool:
    if isinstance(rule, AllowAll):
        return True
    if isinstance(rule, Exact):
        stripped = target[:-1] if target.endswith("/") else target
        return stripped == rule.target or target.startswith(rule.target + "/")
    if isinstance(rule, Wildcard):
        return _wildcard_match(rule, target)
    raise TypeError(f"unknown allow rule {rule!r}")


def _rule_host(rule: AllowRule) -> Optional[str]:
    if isinstance(rule, Exact):
        return host_port(normalize_parse_url(rule.target))
    if isinstance(rule, Wildcard):
        return host_port(normalize_parse_url(rule.prefix + "*" + rule.suffix))
    return None


class Allowlist:
    """Compiled, read-only set of allow rules."""

    def __init__(self, rules: Iterable[AllowRule]) -> None:
        self._rules: Tuple[AllowRule, ...] = tuple(rules)

    @classmethod
    def compile(cls, targets: Iterable[str]) -> "Allowlist":
        rules = []
        for raw in targets:
            rule = compile_rule(raw)
            if rule is None:
                continue
            if isinstance(rule, AllowAll):
                return cls([AllowAll()])
            rules.append(rule)
        if not rules:
            return cls([AllowAll()])
        return cls(rules)

    @property
    def rules(self) -> Tuple[AllowRule, ...]:
        return self._rules

    @property
    def allow_all(self) -> bool:
        return any(isinstance(rule, AllowAll) for rule in self._rules)

    def is_allowed(self, target: str) -> bool:
        """target must already be normalized (host lowercased)."""
        return any(rule_matches(rule, target) for rule in self._rules)

    def private_targets(self) -> Tuple[str, ...]:
        """Hosts of rules that are private or loopback IP literals."""
        hosts = []
        for rule in self._rules:
            host = _rule_host(rule)
            if host is None:
                continue
            private, parsed = is_private_addr(host)
            if parsed and private:
                hosts.append(host)
        return tuple(hosts)
