"""HTTP status code tables.

Reason phrases come from :class:`http.HTTPStatus`; the sets below classify
codes the response machinery treats specially.
"""

from __future__ import annotations

from http import HTTPStatus

STATUS_CODES: dict[int, str] = {s.value: s.phrase for s in HTTPStatus}

# Codes that must not carry a message body
EMPTY: frozenset[int] = frozenset({204, 205, 304})

REDIRECT: frozenset[int] = frozenset({300, 301, 302, 303, 305, 307, 308})


def is_valid(code: object) -> bool:
    return isinstance(code, int) and not isinstance(code, bool) and code in STATUS_CODES


def reason(code: int) -> str | None:
    """Reason phrase for ``code``, or None when the code is unknown."""
    return STATUS_CODES.get(code)
