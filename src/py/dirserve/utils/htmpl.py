from typing import Callable, Iterable, Iterator, LiteralString, Union, cast

from mypy_extensions import KwArg, VarArg

# --
# == HTMPL
#
# Builds HTML documents as trees of nodes, created with `H.<tag>(…)`.
# Text and attribute values are escaped when the tree is serialized, so
# that any string can be passed as content.
#
# >    html(H.ul(H.li(H.a("<name>", href="a%20b"))), doctype="html")

HTML_VOID: frozenset[str] = frozenset(
    "area base br col embed hr img input link meta source track wbr".split()
)

HTML_TAGS: list[LiteralString] = (
    "a base body div footer h1 h2 head header html li link main meta nav p "
    "section span style title ul"
).split()

ESCAPE_TEXT = str.maketrans(
    {"&": "&amp;", "<": "&lt;", ">": "&gt;", '"': "&quot;", "'": "&#x27;"}
)
ESCAPE_ATTRIBUTE = str.maketrans({"&": "&amp;", '"': "&quot;", "<": "&lt;"})


def escape(text: str) -> str:
    return text.translate(ESCAPE_TEXT)


def quoted(text: str | None) -> str:
    return text.translate(ESCAPE_ATTRIBUTE) if text else ""


TNodeContent = Union["Node", str]
TAttributeContent = str | bool | int | None


class Node:
    __slots__ = ["name", "attributes", "children"]

    def __init__(
        self,
        name: str,
        children: Iterable[TNodeContent] | None = None,
        attributes: dict[str, TAttributeContent] | None = None,
    ):
        self.name: str = name
        self.attributes: dict[str, TAttributeContent] = attributes or {}
        self.children: list[Node] = [
            text(_) if isinstance(_, str) else _ for _ in children or ()
        ]

    def iterHTML(self) -> Iterator[str]:
        if self.name == "#text":
            yield escape(str(self.attributes.get("#value") or ""))
            return
        # `None` attributes are written without a value, like `<input checked>`
        attrs = "".join(
            f" {k}" if v is None else f' {k}="{quoted(str(v))}"'
            for k, v in self.attributes.items()
        )
        yield f"<{self.name}{attrs}>"
        if self.name not in HTML_VOID:
            for child in self.children:
                yield from child.iterHTML()
            yield f"</{self.name}>"

    def __str__(self) -> str:
        return "".join(self.iterHTML())


def text(value: str) -> Node:
    return Node("#text", attributes={"#value": value})


NodeFactory = Callable[
    [VarArg(TNodeContent | list[TNodeContent]), KwArg(TAttributeContent)],
    Node,
]


def nodeFactory(name: str) -> NodeFactory:
    def factory(
        *children: TNodeContent | list[TNodeContent], **attributes: TAttributeContent
    ) -> Node:
        content: list[TNodeContent] = []
        for child in children:
            if isinstance(child, (list, tuple)):
                content.extend(child)
            else:
                content.append(child)
        # `class` is a keyword, so it's given as `_`
        return Node(
            name, content, {("class" if k == "_" else k): v for k, v in attributes.items()}
        )

    factory.__name__ = name
    return cast(NodeFactory, factory)


class Markup:
    """Exposes node factories as attributes, like `H.div`."""

    __slots__ = ["_factories"]

    def __init__(self, tags: Iterable[str]):
        self._factories: dict[str, NodeFactory] = {_: nodeFactory(_) for _ in tags}

    def __getattr__(self, name: str) -> NodeFactory:
        try:
            return self._factories[name]
        except KeyError as e:
            raise AttributeError(
                f"No tag {name!r}, pick one of: {', '.join(self._factories)}"
            ) from e


H: Markup = Markup(HTML_TAGS)


def html(*nodes: Node, doctype: str | None = None) -> Iterator[str]:
    if doctype:
        yield f"<!DOCTYPE {doctype}>\n"
    for node in nodes:
        yield from node.iterHTML()


# EOF
