"""Content negotiation over ``Accept*`` request headers.

Each ``Accept*`` header is parsed into ranges ordered by quality (then
specificity, then position). Called with no arguments, a method returns the
accepted values in preference order. Called with candidates, it returns the
best candidate or None.

Example:
    >>> accept = Accepts(req)  # Accept: text/html, application/json;q=0.8
    >>> accept.types("json", "html")
    'html'
    >>> accept.types("image/png") is None
    True
"""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from .asgi import RawRequest

# Shorthands accepted wherever a media type is expected
_SHORTHANDS: dict[str, str] = {
    "html": "text/html",
    "text": "text/plain",
    "json": "application/json",
    "xml": "application/xml",
    "bin": "application/octet-stream",
    "form": "application/x-www-form-urlencoded",
    "urlencoded": "application/x-www-form-urlencoded",
    "multipart": "multipart/*",
}


def normalize_type(value: str) -> str | None:
    """Turn a shorthand, an extension or a full media type into a media type."""
    if "/" in value:
        return value.lower()
    if value in _SHORTHANDS:
        return _SHORTHANDS[value]
    guessed, _ = mimetypes.guess_type(f"x.{value.lstrip('.')}", strict=False)
    return guessed


@dataclass(frozen=True, slots=True)
class AcceptRange:
    """One entry of an ``Accept*`` header."""

    value: str
    q: float
    index: int

    @property
    def specificity(self) -> int:
        return 0 if self.value == "*" or self.value == "*/*" else (1 if self.value.endswith("/*") else 2)


def parse_accept(header: str) -> list[AcceptRange]:
    """Parse an ``Accept*`` header, dropping q=0 entries, best first."""
    ranges = []
    for index, part in enumerate(header.split(",")):
        value, *params = (p.strip() for p in part.split(";"))
        if not value:
            continue
        q = 1.0
        for param in params:
            key, _, raw = param.partition("=")
            if key.strip().lower() == "q":
                try:
                    q = float(raw)
                except ValueError:
                    q = 0.0
        if q > 0:
            ranges.append(AcceptRange(value.lower(), q, index))
    return sorted(ranges, key=lambda r: (-r.q, -r.specificity, r.index))


def type_matches(accepted: str, candidate: str) -> bool:
    if accepted == "*/*":
        return True
    a_type, _, a_sub = accepted.partition("/")
    c_type, _, c_sub = candidate.partition("/")
    return a_type == c_type and (a_sub == "*" or c_sub == "*" or a_sub == c_sub)


def _plain_matches(accepted: str, candidate: str) -> bool:
    return accepted == "*" or accepted == candidate


def _lang_matches(accepted: str, candidate: str) -> bool:
    return accepted == "*" or accepted == candidate or candidate.startswith(accepted + "-") \
        or accepted.startswith(candidate + "-")


class Accepts:
    """Negotiator bound to one request's headers."""

    def __init__(self, req: RawRequest) -> None:
        self.headers = req.headers

    @staticmethod
    def _best(ranges: list[AcceptRange], candidates: tuple[str, ...], match: Callable[[str, str], bool],
              normalize: Callable[[str], str | None] = str.lower) -> str | None:
        best: tuple[tuple[float, int, int], str] | None = None
        for position, candidate in enumerate(candidates):
            if (normalized := normalize(candidate)) is None:
                continue
            # ranges are sorted best first, so the first hit is this candidate's score
            for r in ranges:
                if match(r.value, normalized):
                    score = (r.q, r.specificity, -position)
                    if best is None or score > best[0]:
                        best = (score, candidate)
                    break
        return best[1] if best else None

    def _negotiate(self, header: str, candidates: tuple[str, ...], wildcard: str,
                   match: Callable[[str, str], bool],
                   normalize: Callable[[str], str | None] = str.lower) -> list[str] | str | None:
        raw = self.headers.get(header)
        if raw is None:
            return candidates[0] if candidates else [wildcard]
        ranges = parse_accept(raw)
        if not candidates:
            return [r.value for r in ranges]
        return self._best(ranges, candidates, match, normalize)

    def types(self, *types: str) -> list[str] | str | None:
        """Best of ``types`` per ``Accept``; with no arguments, accepted types best first."""
        return self._negotiate("accept", types, "*/*", type_matches, normalize_type)

    def encodings(self, *encodings: str) -> list[str] | str | None:
        """Best of ``encodings`` per ``Accept-Encoding``; ``identity`` is acceptable unless excluded."""
        raw = self.headers.get("accept-encoding")
        ranges = parse_accept(raw) if raw is not None else []
        mentioned = {part.split(";")[0].strip().lower() for part in (raw or "").split(",")}
        if "identity" not in mentioned and "*" not in mentioned:
            ranges.append(AcceptRange("identity", 0.001 if raw else 1.0, len(mentioned)))
        if not encodings:
            return [r.value for r in ranges]
        return self._best(ranges, encodings, _plain_matches)

    def charsets(self, *charsets: str) -> list[str] | str | None:
        """Best of ``charsets`` per ``Accept-Charset``."""
        return self._negotiate("accept-charset", charsets, "*", _plain_matches)

    def languages(self, *languages: str) -> list[str] | str | None:
        """Best of ``languages`` per ``Accept-Language``."""
        return self._negotiate("accept-language", languages, "*", _lang_matches)
