"""
Path-template router.

Routes are ``(method, template, handler)`` entries kept in an explicit ordered
table. Resolution walks the templates in registration order and the first
template whose literal segments match exactly (and whose ``:name`` segments
receive a non-empty value) wins. Every method registered for that template is
looked up there; if the request method is not among them the result is a
``MethodNotAllowed`` value, even when a later template would also have matched.
A path no template matches falls through to the wildcard route, if any.

The table is built once and never mutated while requests are served, so
``resolve`` needs no locking.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import unquote

from .errors import MethodNotAllowed, NotFound, SongbookError

WILDCARD = "*"


@dataclass(frozen=True)
class PathTemplate:
    """A template such as ``/view/:id`` split into segments."""

    template: str
    segments: Tuple[str, ...]

    @classmethod
    def parse(cls, template: str) -> "PathTemplate":
        if not template.startswith("/"):
            raise ValueError(f"Path template must start with '/': {template!r}")
        return cls(template, tuple(template[1:].split("/")))

    @property
    def parameter_names(self) -> List[str]:
        return [s[1:] for s in self.segments if s.startswith(":")]

    def match(self, path: str) -> Optional[Dict[str, str]]:
        """Return the URL-decoded parameters if ``path`` fits, else None.

        ``path`` is the raw (still percent-encoded) request path, so an encoded
        ``/`` inside a parameter stays within its segment.
        """
        if not path.startswith("/"):
            return None
        parts = path[1:].split("/")
        if len(parts) != len(self.segments):
            return None
        params: Dict[str, str] = {}
        for segment, part in zip(self.segments, parts):
            if segment.startswith(":"):
                if not part:
                    return None
                params[segment[1:]] = unquote(part)
            elif segment != part:
                return None
        return params


@dataclass(frozen=True)
class Route:
    method: str
    template: PathTemplate
    handler: Callable[..., Any]
    admin_only: bool = False

    @property
    def name(self) -> str:
        return getattr(self.handler, "__name__", repr(self.handler))


@dataclass
class Resolution:
    """Outcome of ``Router.resolve``: a route with its parameters, or an error value."""

    route: Optional[Route] = None
    params: Dict[str, str] = field(default_factory=dict)
    error: Optional[SongbookError] = None

    @property
    def ok(self) -> bool:
        return self.route is not None


class Router:
    """Ordered route table. Build it up front, then only call ``resolve``."""

    def __init__(self) -> None:
        # (template, {METHOD: Route}) in first-registration order of the template
        self._table: List[Tuple[PathTemplate, Dict[str, Route]]] = []
        self._fallback: Dict[str, Route] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def add(self, method: str, template: str, handler: Callable[..., Any], admin_only: bool = False) -> Route:
        """Register ``handler`` for ``method`` on ``template``.

        Registering an already known template adds a method to that template's
        slot; it keeps the slot's original position in the table. ``*`` is the
        wildcard, always consulted last.
        """
        method = method.upper()
        if template == WILDCARD:
            route = Route(method, PathTemplate(WILDCARD, ()), handler, admin_only)
            if method in self._fallback:
                raise ValueError(f"Duplicate wildcard route for {method}")
            self._fallback[method] = route
            return route

        parsed = PathTemplate.parse(template)
        route = Route(method, parsed, handler, admin_only)
        for existing, methods in self._table:
            if existing == parsed:
                if method in methods:
                    raise ValueError(f"Duplicate route {method} {template}")
                methods[method] = route
                return route
        self._table.append((parsed, {method: route}))
        return route

    def get(self, template: str, handler: Callable[..., Any], admin_only: bool = False) -> Route:
        return self.add("GET", template, handler, admin_only)

    def post(self, template: str, handler: Callable[..., Any], admin_only: bool = False) -> Route:
        return self.add("POST", template, handler, admin_only)

    def put(self, template: str, handler: Callable[..., Any], admin_only: bool = False) -> Route:
        return self.add("PUT", template, handler, admin_only)

    def delete(self, template: str, handler: Callable[..., Any], admin_only: bool = False) -> Route:
        return self.add("DELETE", template, handler, admin_only)

    def fallback(self, handler: Callable[..., Any], method: str = "GET") -> Route:
        return self.add(method, WILDCARD, handler)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @property
    def routes(self) -> List[Route]:
        """All routes in resolution order (wildcard last)."""
        ordered = [route for _, methods in self._table for route in methods.values()]
        return ordered + list(self._fallback.values())

    def resolve(self, method: str, path: str) -> Resolution:
        method = method.upper()
        for template, methods in self._table:
            params = template.match(path)
            if params is None:
                continue
            route = methods.get(method)
            if route is None:
                return Resolution(error=MethodNotAllowed())
            return Resolution(route=route, params=params)

        if not self._fallback:
            return Resolution(error=NotFound())
        route = self._fallback.get(method)
        if route is None:
            return Resolution(error=MethodNotAllowed())
        return Resolution(route=route)
