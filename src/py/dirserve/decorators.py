from typing import Any, Callable, ClassVar, TypeVar, cast

T = TypeVar("T")


class Extra:
    """Reads and writes the meta attributes that decorators attach to
    functions."""

    ON: ClassVar[str] = "_dirserve_on"
    ON_PRIORITY: ClassVar[str] = "_dirserve_on_priority"
    # For values without a `__dict__`, by object id
    Annotations: ClassVar[dict[int, dict[str, Any]]] = {}

    @staticmethod
    def Meta(scope: Any) -> dict[str, Any]:
        if hasattr(scope, "__dict__"):
            return cast(dict[str, Any], scope.__dict__)
        return Extra.Annotations.setdefault(id(scope), {})

    @staticmethod
    def Get(value: Any, key: str) -> Any:
        """Returns the meta attribute `key` of `value`. Bound methods
        expose the attributes of their function."""
        if (meta := Extra.Annotations.get(id(value))) is not None:
            return meta.get(key)
        return getattr(value, key, None)


def on(
    priority: int = 0, **methods: str | list[str] | tuple[str, ...]
) -> Callable[[T], T]:
    """Marks a service method as a request handler. Keywords are HTTP
    methods, possibly joined with `_` as in `GET_POST`, and values are
    one or more route templates:

    >    @on(GET=("/", "/{path:any}"))
    >    async def read(self, request, path=""):
    >        ...

    Parameters captured by the route are passed as keyword arguments.
    When several routes match, the handler with the highest `priority`
    wins."""

    def decorator(function: T) -> T:
        meta = Extra.Meta(function)
        routes: list[tuple[str, str]] = meta.setdefault(Extra.ON, [])
        meta.setdefault(Extra.ON_PRIORITY, priority)
        for names, templates in methods.items():
            paths = (templates,) if isinstance(templates, str) else templates
            routes.extend(
                (method, path) for method in names.upper().split("_") for path in paths
            )
        return function

    return decorator


# EOF
