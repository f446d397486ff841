import asyncio
import sys
from pathlib import Path
from typing import Callable

import pytest

ROOT = Path(__file__).resolve().parents[1] / "src" / "py"
if str(ROOT) not in sys.path:
	sys.path.insert(0, str(ROOT))

from dirserve.http.model import HTTPRequest, HTTPResponse  # noqa: E402
from dirserve.http.parser import HTTPParser  # noqa: E402
from dirserve.model import Application, mount  # noqa: E402
from dirserve.services.files import FileService  # noqa: E402


def parse(payload: bytes) -> list[HTTPRequest]:
	return [_ for _ in HTTPParser().feed(payload) if isinstance(_, HTTPRequest)]


def fetch(
	app: Application,
	path: str,
	method: str = "GET",
	headers: dict[str, str] | None = None,
) -> HTTPResponse:
	"""Sends a request through the parser and the application, like the
	socket server does."""
	head = "".join(f"{k}: {v}\r\n" for k, v in (headers or {}).items())
	payload = f"{method} {path} HTTP/1.1\r\nHost: localhost\r\n{head}\r\n"
	requests = parse(payload.encode("ascii"))
	assert len(requests) == 1, f"Could not parse request: {payload!r}"
	return asyncio.run(app.process(requests[0]))


@pytest.fixture
def tree(tmp_path: Path) -> Path:
	"""A small served tree:

	>   index.html
	>   data.json
	>   blob.qqqzz
	>   docs/readme.txt
	>   docs/nested/deep.png
	>   empty/
	"""
	root = tmp_path / "root"
	(root / "docs" / "nested").mkdir(parents=True)
	(root / "empty").mkdir()
	(root / "index.html").write_text("<p>Hello</p>")
	(root / "data.json").write_text('{"ok": true}')
	(root / "blob.qqqzz").write_bytes(b"\x00\x01\x02")
	(root / "docs" / "readme.txt").write_text("Read me")
	(root / "docs" / "nested" / "deep.png").write_bytes(b"\x89PNG\r\n\x1a\n")
	return root


@pytest.fixture
def app(tree: Path) -> Application:
	return mount(FileService(tree))


@pytest.fixture
def get(app: Application) -> Callable[..., HTTPResponse]:
	def f(path: str, method: str = "GET", **headers: str) -> HTTPResponse:
		return fetch(app, path, method, headers)

	return f


# EOF
