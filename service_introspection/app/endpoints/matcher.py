"""
Endpoint pattern matching.

A pattern is either an absolute URL (``https://api.example.com/users/:id``)
or a bare path (``/public-report``). Only the path takes part in matching;
the hostname of an absolute pattern tells the proxy where to forward.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple
from urllib.parse import unquote, urlsplit

from shared.logging import get_logger
from shared.errors import EndpointNotGrantedError

logger = get_logger("introspection.endpoints")

_PARAM_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class PatternParseError(ValueError):
    """An endpoint template could not be parsed."""


@dataclass(frozen=True)
class Segment:
    value: str
    is_param: bool = False

    def matches(self, requested: str) -> bool:
        if self.is_param:
            return requested != ""
        return self.value == requested


@dataclass(frozen=True)
class EndpointPattern:
    """A parsed endpoint template."""
    raw: str
    hostname: Optional[str]
    segments: Tuple[Segment, ...]

    def matches(self, requested_path: str) -> bool:
        requested = split_path(requested_path, decode=True)
        if len(requested) != len(self.segments):
            return False
        return all(segment.matches(part) for segment, part in zip(self.segments, requested))


def split_path(path: str, decode: bool = False) -> Tuple[str, ...]:
    """Split a path into segments, ignoring the leading and one trailing slash."""
    if path in ("", "/"):
        return ()
    if path.startswith("/"):
        path = path[1:]
    if path.endswith("/"):
        path = path[:-1]
    parts = path.split("/")
    if decode:
        parts = [unquote(part) for part in parts]
    return tuple(parts)


def parse_pattern(raw: str) -> EndpointPattern:
    """Parse an endpoint template into segments."""
    if not isinstance(raw, str) or not raw.strip():
        raise PatternParseError("empty endpoint pattern")

    raw = raw.strip()
    hostname = None
    if raw.startswith("/"):
        path = raw
    else:
        parts = urlsplit(raw)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise PatternParseError(f"not an absolute http(s) URL or path: {raw}")
        hostname = parts.hostname
        path = parts.path or "/"

    segments = []
    for part in split_path(path):
        if part.startswith(":"):
            name = part[1:]
            if not _PARAM_NAME.match(name):
                raise PatternParseError(f"invalid parameter segment '{part}' in {raw}")
            segments.append(Segment(name, is_param=True))
        else:
            segments.append(Segment(unquote(part)))

    return EndpointPattern(raw=raw, hostname=hostname, segments=tuple(segments))


def match_endpoints(requested_path: str,
                    patterns: Iterable[str]) -> Tuple[Optional[EndpointPattern], bool]:
    """Return the first pattern matching ``requested_path``.

    Patterns that fail to parse are skipped with a warning.
    """
    for raw in patterns:
        try:
            pattern = parse_pattern(raw)
        except PatternParseError as e:
            logger.warning("Skipping unparseable endpoint pattern", pattern=raw, error=str(e))
            continue

        if pattern.matches(requested_path):
            return pattern, True

    return None, False


def require_endpoint(requested_path: str, patterns: Iterable[str]) -> EndpointPattern:
    """Like match_endpoints, raising EndpointNotGrantedError when nothing matches."""
    patterns = list(patterns)
    pattern, matched = match_endpoints(requested_path, patterns)
    if not matched:
        raise EndpointNotGrantedError(
            f"{requested_path} not in granted endpoints",
            details={"requested_path": requested_path, "endpoints": patterns}
        )
    return pattern
