from typing import ClassVar, Iterator, Optional

from .http.model import HTTPRequest, HTTPResponse
from .routing import Dispatcher, Handler, RouteMatch
from .utils.logging import exception, warning

# -----------------------------------------------------------------------------
#
# SERVICE
#
# -----------------------------------------------------------------------------


class Service:
    """Groups request handlers, which are the methods decorated with `@on`.
    A service is mounted in exactly one application."""

    PREFIX: ClassVar[str] = ""

    def __init__(self, name: str | None = None, *, prefix: str | None = None):
        self.name: str = name or type(self).__name__
        self.prefix: str = self.PREFIX if prefix is None else prefix
        self.app: Optional[Application] = None
        self._handlers: list[Handler] | None = None

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    @property
    def isMounted(self) -> bool:
        return self.app is not None

    @property
    def handlers(self) -> list[Handler]:
        if self._handlers is None:
            self._handlers = list(self.iterHandlers())
        return self._handlers

    def iterHandlers(self) -> Iterator[Handler]:
        cls = type(self)
        for name in dir(cls):
            # Attributes are looked up on the class first, so that
            # properties are not evaluated.
            if Handler.FromMethod(getattr(cls, name, None)) and (
                handler := Handler.FromMethod(getattr(self, name))
            ):
                yield handler

    def __repr__(self) -> str:
        return f"(Service {self.name}{' :mounted' if self.isMounted else ''})"


# -----------------------------------------------------------------------------
#
# APPLICATION
#
# -----------------------------------------------------------------------------


class Application:
    """Routes requests to the handlers of the mounted services."""

    def __init__(self, services: list[Service] | None = None) -> None:
        self.dispatcher: Dispatcher = Dispatcher()
        self.services: list[Service] = []
        for _ in services or ():
            self.mount(_)

    def mount(self, service: Service, prefix: str | None = None) -> Service:
        if service.isMounted:
            raise RuntimeError(f"Service is already mounted: {service}")
        for handler in service.handlers:
            self.dispatcher.register(handler, prefix or service.prefix)
        service.app = self
        self.services.append(service)
        return service

    async def start(self) -> "Application":
        for _ in self.services:
            await _.start()
        return self

    async def stop(self) -> "Application":
        for _ in self.services:
            await _.stop()
        return self

    def route(self, method: str, path: str) -> RouteMatch:
        return self.dispatcher.match(method, path)

    async def process(self, request: HTTPRequest) -> HTTPResponse:
        """Always returns a response. Failing handlers are logged and
        answered with a bare `500`."""
        match = self.route(request.method, request.path or "/")
        if (handler := match.handler) is None:
            return (
                self.onMethodNotAllowed(request, match.allowed)
                if match.allowed
                else self.onRouteNotFound(request)
            )
        try:
            return await handler(request, match.params)
        except Exception as e:
            exception(e, f"Handler failed for {request.method} {request.path}")
            return request.fail()

    def onRouteNotFound(self, request: HTTPRequest) -> HTTPResponse:
        warning("No route found", Method=request.method, Path=request.path)
        return request.notFound()

    def onMethodNotAllowed(
        self, request: HTTPRequest, allowed: list[str]
    ) -> HTTPResponse:
        warning(
            "Method not allowed",
            Method=request.method,
            Path=request.path,
            Allowed=", ".join(allowed),
        )
        return request.notAllowed(allowed)


def mount(*components: Application | Service) -> Application:
    """Mounts the given services in the first given application, or in
    a new one."""
    app: Application | None = None
    services: list[Service] = []
    for _ in components:
        if isinstance(_, Application):
            app = app or _
        elif isinstance(_, Service):
            services.append(_)
        else:
            raise RuntimeError(f"Unsupported component type {type(_)}: {_}")
    app = app or Application()
    for _ in services:
        app.mount(_)
    return app


# EOF
