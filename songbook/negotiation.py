"""
Accept-header content negotiation.

Responses come in three flavours: raw song markup (``text/song``), plain text
and HTML. ``negotiate`` picks the one the client accepts with the highest
quality; equal quality goes to the more specific media range, then to the
order above. If the client accepts none of them, HTML is used.
"""

from typing import List, Optional, Sequence, Tuple

MIME_TEXT_SONG = "text/song"
MIME_TEXT_PLAIN = "text/plain"
MIME_TEXT_HTML = "text/html"
MIME_JSON = "application/json"

RESPONSE_TYPES = (MIME_TEXT_SONG, MIME_TEXT_PLAIN, MIME_TEXT_HTML)


def parse_accept(header: Optional[str]) -> List[Tuple[str, str, float]]:
    """Parse an Accept header into ``(type, subtype, q)`` triples.

    A missing or empty header means ``*/*``. Malformed ranges are skipped.
    """
    if not header or not header.strip():
        return [("*", "*", 1.0)]

    ranges = []
    for item in header.split(","):
        parts = [p.strip() for p in item.split(";")]
        media = parts[0].lower()
        if not media:
            continue
        if media == "*":
            media = "*/*"
        if "/" not in media:
            continue
        type_, subtype = media.split("/", 1)
        q = 1.0
        for param in parts[1:]:
            name, _, value = param.partition("=")
            if name.strip().lower() == "q":
                try:
                    q = max(0.0, min(1.0, float(value)))
                except ValueError:
                    q = 0.0
        ranges.append((type_.strip(), subtype.strip(), q))
    return ranges


def _fitness(candidate: str, ranges: List[Tuple[str, str, float]]) -> Tuple[int, float]:
    """Most specific matching range for ``candidate`` and its quality."""
    c_type, c_subtype = candidate.split("/", 1)
    best = (-1, 0.0)
    for type_, subtype, q in ranges:
        if type_ not in (c_type, "*") or subtype not in (c_subtype, "*"):
            continue
        specificity = (type_ == c_type) + (subtype == c_subtype)
        if specificity > best[0]:
            best = (specificity, q)
    return best


def best_match(supported: Sequence[str], header: Optional[str]) -> Optional[str]:
    """First-listed supported type with the best (quality, specificity), or None."""
    ranges = parse_accept(header)
    chosen: Optional[str] = None
    chosen_score = (0.0, -1)
    for candidate in supported:
        specificity, q = _fitness(candidate, ranges)
        if specificity < 0 or q <= 0:
            continue
        score = (q, specificity)
        if score > chosen_score:
            chosen, chosen_score = candidate, score
    return chosen


def negotiate(header: Optional[str]) -> str:
    return best_match(RESPONSE_TYPES, header) or MIME_TEXT_HTML


def wants_json(header: Optional[str]) -> bool:
    """True when the client lists application/json explicitly."""
    return any(
        (type_, subtype) == ("application", "json") and q > 0
        for type_, subtype, q in parse_accept(header)
    )
