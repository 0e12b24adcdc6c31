"""Target URL normalization: lowercase the host, escape what must be escaped."""
import re
from urllib.parse import SplitResult, quote, urlsplit

# A '%' must always start a two-digit hex escape.
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")
_BAD_AUTHORITY_CHARS = re.compile(r"[\s\x00-\x1f\x7f]")

# Characters left alone when re-escaping. '%' is kept so existing escapes are not doubled.
_PATH_SAFE = "/:@!$&'()*+,;=-._~%"
_QUERY_SAFE = _PATH_SAFE + "?"


class ParseError(ValueError):
    """Raised when a target string cannot be parsed as a URL."""


def host_port(url: SplitResult) -> str:
    """Return host[:port] of the authority, without any user:pass@ part."""
    return url.netloc.rpartition("@")[2]


def _lower_host(netloc: str) -> str:
    userinfo, sep, hostport = netloc.rpartition("@")
    return userinfo + sep + hostport.lower()


def normalize_parse_url(raw: str) -> SplitResult:
    """
    Parse raw into its components with the host lowercased.
    Strings that are not absolute URLs still parse; illegal characters are percent-encoded
    (e.g. "not a url" -> path "not%20a%20url"). Raises ParseError for structurally invalid input.
    """
    if _BAD_ESCAPE.search(raw):
        raise ParseError(f"invalid URL escape in {raw!r}")
    try:
        parts = urlsplit(raw)
        # Accessing .port validates it (non-numeric or out of range raises ValueError).
        parts.port
    except ValueError as exc:
        raise ParseError(f"invalid URL {raw!r}: {exc}") from exc
    if _BAD_AUTHORITY_CHARS.search(parts.netloc):
        raise ParseError(f"invalid character in host of {raw!r}")

    return SplitResult(
        scheme=parts.scheme,
        netloc=_lower_host(parts.netloc),
        path=quote(parts.path, safe=_PATH_SAFE),
        query=quote(parts.query, safe=_QUERY_SAFE),
        fragment=quote(parts.fragment, safe=_QUERY_SAFE),
    )


def normalize_url(raw: str) -> str:
    return normalize_parse_url(raw).geturl()


def strip_url_query(raw: str) -> str:
    """Normalize raw and drop everything from the first '?' on."""
    return normalize_url(raw).split("?", 1)[0]
