import re
from inspect import isawaitable
from typing import Any, Callable, ClassVar, NamedTuple, Optional, Pattern

from .decorators import Extra
from .http.model import HTTPRequest, HTTPRequestError, HTTPResponse
from .utils.logging import LogLevel, debug, info, logged

# -----------------------------------------------------------------------------
#
# ROUTE
#
# -----------------------------------------------------------------------------
#
# A route is a path template like `/docs/{path:any}`, split in text chunks
# and parameter chunks. Parameters are `{name}`, where the name is also the
# pattern, or `{name:pattern}`, where the pattern is either registered in
# `Route.PATTERNS` or a regular expression.


class RoutePattern(NamedTuple):
    expr: str
    convert: Callable[[str], Any] = str


class TextChunk(NamedTuple):
    text: str


class ParameterChunk(NamedTuple):
    name: str
    pattern: RoutePattern


TChunk = TextChunk | ParameterChunk


class Route:
    PATTERNS: ClassVar[dict[str, RoutePattern]] = {
        "id": RoutePattern(r"[a-zA-Z0-9\-_]+"),
        "name": RoutePattern(r"\w[\-\w]*"),
        "segment": RoutePattern(r"[^/]+"),
        "int": RoutePattern(r"\-?\d+", int),
        "any": RoutePattern(r".*"),
        "rest": RoutePattern(r".+"),
    }

    RE_PARAMETER: ClassVar[Pattern[str]] = re.compile(
        r"\{(?P<name>[A-Za-z_]\w*)(:(?P<pattern>[^}]+))?\}"
    )
    RE_WORD: ClassVar[Pattern[str]] = re.compile(r"^[A-Za-z]+$")

    @classmethod
    def Pattern(cls, name: str) -> RoutePattern:
        key = name.lower()
        if key in cls.PATTERNS:
            return cls.PATTERNS[key]
        elif cls.RE_WORD.match(name):
            # A plain word is most likely a typo in a pattern name
            raise ValueError(
                f"Unknown route pattern '{name}', expected one of: {', '.join(sorted(cls.PATTERNS))}"
            )
        else:
            return RoutePattern(name)

    @classmethod
    def Parse(cls, template: str) -> list[TChunk]:
        """Splits the template in chunks, which always start and end with
        a (possibly empty) text chunk."""
        res: list[TChunk] = []
        start = 0
        for m in cls.RE_PARAMETER.finditer(template):
            res.append(TextChunk(template[start : m.start()]))
            name = m.group("name")
            res.append(ParameterChunk(name, cls.Pattern(m.group("pattern") or name)))
            start = m.end()
        res.append(TextChunk(template[start:]))
        return res

    def __init__(self, text: str, handler: Optional["Handler"] = None):
        self.text: str = text
        self.handler: Handler | None = handler
        self.chunks: list[TChunk] = self.Parse(text)
        self.params: dict[str, RoutePattern] = {
            _.name: _.pattern for _ in self.chunks if isinstance(_, ParameterChunk)
        }
        try:
            self.regexp: Pattern[str] = re.compile(f"^{self.toRegExp()}$")
        except re.error as e:
            raise ValueError(f"Malformed route {text!r}: {e}") from e

    @property
    def priority(self) -> int:
        return self.handler.priority if self.handler else 0

    def toRegExp(self) -> str:
        return "".join(
            re.escape(_.text)
            if isinstance(_, TextChunk)
            else f"(?P<{_.name}>{_.pattern.expr})"
            for _ in self.chunks
        )

    def match(self, path: str) -> dict[str, Any] | None:
        """Returns the converted parameters when `path` matches."""
        m = self.regexp.match(path)
        if not m:
            return None
        return {k: p.convert(m.group(k)) for k, p in self.params.items()}

    def __repr__(self) -> str:
        return f"(Route {self.text!r})"


# -----------------------------------------------------------------------------
#
# HANDLER
#
# -----------------------------------------------------------------------------


class Handler:
    """Binds a callable to the `(method, route)` pairs it responds to."""

    @staticmethod
    def FromMethod(method: Any) -> Optional["Handler"]:
        """Creates a handler from a (bound) method decorated with `@on`,
        returning `None` for anything else."""
        routes = Extra.Get(method, Extra.ON)
        if not routes:
            return None
        return Handler(method, routes, Extra.Get(method, Extra.ON_PRIORITY) or 0)

    def __init__(
        self,
        functor: Callable[..., Any],
        routes: list[tuple[str, str]],
        priority: int = 0,
    ):
        self.functor = functor
        self.priority = priority
        self.methods: dict[str, list[str]] = {}
        for method, path in routes:
            self.methods.setdefault(method, []).append(path)

    async def __call__(
        self, request: HTTPRequest, params: dict[str, Any]
    ) -> HTTPResponse:
        try:
            res = self.functor(request, **params)
            return await res if isawaitable(res) else res
        except HTTPRequestError as e:
            # The message is for the logs, the client only gets the status
            return request.error(e.status or 500)

    def __repr__(self) -> str:
        return f"(Handler {self.functor.__name__} {self.methods} :priority {self.priority})"


# -----------------------------------------------------------------------------
#
# DISPATCHER
#
# -----------------------------------------------------------------------------


class RouteMatch(NamedTuple):
    route: Route | None
    params: dict[str, Any]
    # The methods with a route for the path, used for `405` responses
    allowed: list[str]

    @property
    def handler(self) -> Optional[Handler]:
        return self.route.handler if self.route else None


class Dispatcher:
    """Indexes routes by HTTP method and finds the best one for a request."""

    def __init__(self) -> None:
        self.routes: dict[str, list[Route]] = {}

    def register(self, handler: Handler, prefix: str | None = None) -> "Dispatcher":
        for method, paths in handler.methods.items():
            for path in paths:
                path = f"{prefix or ''}{path}"
                if not path.startswith("/"):
                    path = f"/{path}"
                self.routes.setdefault(method, []).append(Route(path, handler))
                info("Registered route", Method=method, Path=path)
        return self

    def matchMethod(
        self, method: str, path: str
    ) -> tuple[Route | None, dict[str, Any] | None]:
        """Returns the matching route with the highest priority. Routes are
        tried in registration order, so ties go to the first one."""
        best: tuple[Route | None, dict[str, Any] | None] = (None, None)
        for route in self.routes.get(method, ()):
            current = best[0]
            if current is not None and route.priority <= current.priority:
                continue
            if (params := route.match(path)) is not None:
                best = (route, params)
        return best

    def match(self, method: str, path: str) -> RouteMatch:
        route, params = self.matchMethod(method, path)
        if route is None:
            return RouteMatch(
                None,
                {},
                [
                    _
                    for _ in self.routes
                    if _ != method and self.matchMethod(_, path)[0]
                ],
            )
        logged(LogLevel.Debug) and debug(
            "Route matched", Method=method, Path=path, Route=route.text
        )
        return RouteMatch(route, params or {}, [method])


# EOF
