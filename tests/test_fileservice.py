import errno
import os
import re
import time
from pathlib import Path

import pytest

from dirserve.model import mount
from dirserve.services import files as service
from dirserve.services.files import FileService

from conftest import fetch

RE_HREF = re.compile(r'<a href="([^"]*)">')


def hrefs(body: bytes) -> list[str]:
	return RE_HREF.findall(body.decode("utf8"))


def test_root_lists_served_directory(get):
	res = get("/")
	assert res.status == 200
	assert res.contentType == "text/html"
	body = res.payload.decode("utf8")
	assert body.startswith("<!DOCTYPE html>")
	assert "<title>Directory Listing</title>" in body
	assert "<h1>Directory Listing for /</h1>" in body
	assert hrefs(res.payload) == [
		"blob.qqqzz",
		"data.json",
		"docs/",
		"empty/",
		"index.html",
	]


def test_subdirectory_listing(get):
	res = get("/docs")
	assert res.status == 200
	assert res.contentType == "text/html"
	body = res.payload.decode("utf8")
	assert "<h1>Directory Listing for /docs/</h1>" in body
	assert '<base href="/docs/">' in body
	assert hrefs(res.payload) == ["nested/", "readme.txt"]
	# The trailing slash does not change the listing
	assert get("/docs/").payload == res.payload


def test_nested_directory_listing(get):
	res = get("/docs/nested/")
	assert "<h1>Directory Listing for /docs/nested/</h1>" in res.payload.decode("utf8")
	assert hrefs(res.payload) == ["deep.png"]


def test_empty_directory_listing(get):
	res = get("/empty")
	assert res.status == 200
	assert hrefs(res.payload) == []
	assert "<ul></ul>" in res.payload.decode("utf8")


@pytest.mark.parametrize(
	"path,expected",
	[
		("/index.html", "text/html"),
		("/data.json", "application/json"),
		("/docs/nested/deep.png", "image/png"),
		("/docs/readme.txt", "text/plain"),
		("/blob.qqqzz", "application/octet-stream"),
	],
)
def test_file_content_type(get, path, expected):
	res = get(path)
	assert res.status == 200
	assert res.contentType == expected


def test_file_without_extension(tree, get):
	(tree / "LICENSE").write_text("MIT")
	assert get("/LICENSE").contentType == "application/octet-stream"


def test_file_bytes_are_returned_unchanged(tree, get):
	data = bytes(range(256)) * 64
	(tree / "docs" / "payload.bin").write_bytes(data)
	res = get("/docs/payload.bin")
	assert res.status == 200
	assert res.payload == data
	assert res.getHeader("Content-Length") == str(len(data))


def test_empty_file(tree, get):
	(tree / "empty.txt").write_bytes(b"")
	res = get("/empty.txt")
	assert res.status == 200
	assert res.payload == b""
	assert res.getHeader("Content-Length") == "0"


def test_missing_path_is_not_found(get):
	res = get("/nope.txt")
	assert res.status == 404
	assert res.payload == b"Not Found"
	assert get("/docs/nope/deeper").status == 404
	# A file can't have children
	assert get("/index.html/child").status == 404


@pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="Named pipes not supported")
def test_named_pipe_is_unhandled(tree, get):
	os.mkfifo(tree / "pipe")
	res = get("/pipe")
	assert res.status == 500
	assert res.contentType == "text/plain"
	assert res.payload == b"unhandled type"
	# The pipe is still listed
	assert "pipe" in hrefs(get("/").payload)


def test_repeated_requests_are_identical(get):
	for path in ("/", "/docs", "/data.json", "/nope"):
		a = get(path)
		b = get(path)
		assert a.head() == b.head()
		assert a.payload == b.payload


def test_percent_encoded_path(tree, get):
	(tree / "my file.txt").write_text("spaced")
	assert "my%20file.txt" in hrefs(get("/").payload)
	res = get("/my%20file.txt")
	assert res.status == 200
	assert res.payload == b"spaced"


def test_names_are_escaped_in_listing(tree, get):
	(tree / "<b>&x.txt").write_text("x")
	(tree / 'quo"te').mkdir()
	body = get("/").payload.decode("utf8")
	assert "<b>" not in body
	assert "&lt;b&gt;&amp;x.txt" in body
	assert "%3Cb%3E%26x.txt" in hrefs(body.encode("utf8"))
	assert "quo%22te/" in hrefs(body.encode("utf8"))


@pytest.mark.parametrize(
	"path",
	[
		"/../secret.txt",
		"/docs/../../secret.txt",
		"/%2e%2e/secret.txt",
		"/..%2Fsecret.txt",
		"//secret.txt",
	],
)
def test_traversal_stays_within_root(tree, get, path):
	(tree.parent / "secret.txt").write_text("top secret")
	res = get(path)
	# `..` never climbs above the root, so these land on a missing file
	assert res.status == 404
	assert b"top secret" not in res.payload


def test_symlink_out_of_root_is_refused(tree, get):
	(tree.parent / "secret.txt").write_text("top secret")
	(tree / "escape").symlink_to(tree.parent / "secret.txt")
	(tree / "escapedir").symlink_to(tree.parent, target_is_directory=True)
	for path in ("/escape", "/escapedir", "/escapedir/secret.txt"):
		res = get(path)
		assert res.status == 403
		assert b"top secret" not in res.payload
		assert str(tree.parent).encode("utf8") not in res.payload


def test_symlinks_within_root_are_followed(tree, get):
	(tree / "link.json").symlink_to(tree / "data.json")
	(tree / "linkdir").symlink_to(tree / "docs", target_is_directory=True)
	res = get("/link.json")
	assert res.status == 200
	assert res.contentType == "application/json"
	assert res.payload == b'{"ok": true}'
	listing = get("/linkdir")
	assert "<h1>Directory Listing for /linkdir/</h1>" in listing.payload.decode("utf8")
	assert hrefs(listing.payload) == ["nested/", "readme.txt"]
	assert "linkdir/" in hrefs(get("/").payload)


def test_dangling_symlink(tree, get):
	(tree / "dangling").symlink_to(tree / "missing")
	assert "dangling" in hrefs(get("/").payload)
	assert get("/dangling").status == 404


@pytest.mark.skipif(
	not hasattr(os, "geteuid") or os.geteuid() == 0,
	reason="Permissions are not enforced for root",
)
def test_unreadable_file_is_forbidden(tree, get):
	path = tree / "locked.txt"
	path.write_text("locked")
	path.chmod(0)
	try:
		res = get("/locked.txt")
		assert res.status == 403
		assert res.payload == b"Forbidden"
	finally:
		path.chmod(0o644)


@pytest.mark.parametrize(
	"target,path,error,status,body",
	[
		(
			"listDirectory",
			"/docs",
			PermissionError(errno.EACCES, "Permission denied", "/srv/private/docs"),
			403,
			b"Forbidden",
		),
		(
			"listDirectory",
			"/docs",
			OSError(errno.EIO, "Input/output error", "/srv/private/docs"),
			500,
			b"Internal Server Error",
		),
		(
			"readBytes",
			"/index.html",
			PermissionError(errno.EACCES, "Permission denied", "/srv/private/index.html"),
			403,
			b"Forbidden",
		),
		(
			"readBytes",
			"/index.html",
			OSError(errno.EIO, "Input/output error", "/srv/private/index.html"),
			500,
			b"Internal Server Error",
		),
	],
)
def test_filesystem_errors_map_to_status(
	tree, monkeypatch, target, path, error, status, body
):
	def failing(local: Path) -> None:
		raise error

	monkeypatch.setattr(service, target, failing)
	res = fetch(mount(FileService(tree)), path)
	assert res.status == status
	assert res.contentType == "text/plain"
	# Only the status message, no local path or error detail
	assert res.payload == body
	assert b"/srv/private" not in res.payload
	assert str(tree).encode("utf8") not in res.payload


def test_trailing_slash_on_file_is_not_found(get):
	assert get("/index.html/").status == 404
	assert get("/docs/readme.txt/").status == 404
	assert get("/docs/").status == 200


def undecodable(tree: Path, name: bytes) -> str:
	"""Returns the `str` name `os` uses for the non UTF-8 `name`, skipping
	when the filesystem can't store it."""
	res = os.fsdecode(name)
	try:
		(tree / res).write_bytes(b"")
		(tree / res).unlink()
	except (OSError, UnicodeEncodeError):
		pytest.skip("Filesystem does not accept non UTF-8 names")
	return res


def test_non_utf8_name_is_listed_and_served(tree, get):
	name = undecodable(tree, b"caf\xe9.txt")
	(tree / name).write_bytes(b"hi")
	res = get("/")
	assert res.status == 200
	assert "caf%E9.txt" in hrefs(res.payload)
	# The undecodable byte is displayed as a replacement character
	assert "caf�.txt" in res.payload.decode("utf8")
	# Other entries are still listed
	assert "index.html" in hrefs(res.payload)
	# The href leads back to the file
	file = get("/caf%E9.txt")
	assert file.status == 200
	assert file.payload == b"hi"
	assert file.contentType == "text/plain"


def test_non_utf8_directory_listing(tree, get):
	name = undecodable(tree, b"r\xe9p")
	(tree / name).mkdir()
	(tree / name / "inner.txt").write_text("inner")
	assert "r%E9p/" in hrefs(get("/").payload)
	res = get("/r%E9p")
	assert res.status == 200
	body = res.payload.decode("utf8")
	assert '<base href="/r%E9p/">' in body
	assert "<h1>Directory Listing for /r�p/</h1>" in body
	assert hrefs(res.payload) == ["inner.txt"]
	assert get("/r%E9p/inner.txt").payload == b"inner"


def test_non_get_methods_are_not_allowed(get):
	for method in ("POST", "PUT", "DELETE", "PATCH"):
		res = get("/index.html", method=method)
		assert res.status == 405
		assert res.getHeader("Allow") == "GET"


def test_slow_filesystem_times_out(tree, monkeypatch):
	def slow(path: Path) -> bytes:
		time.sleep(0.5)
		return b""

	monkeypatch.setattr(service, "readBytes", slow)
	app = mount(FileService(tree, timeout=0.05))
	res = fetch(app, "/index.html")
	assert res.status == 504


def test_unexpected_errors_do_not_leak(tree, monkeypatch):
	def broken(path: Path) -> None:
		raise RuntimeError(f"Exploded on {path}")

	monkeypatch.setattr(service, "entryKind", broken)
	app = mount(FileService(tree))
	res = fetch(app, "/index.html")
	assert res.status == 500
	assert res.payload == b"Internal Server Error"


def test_configured_root(tree):
	svc = FileService(str(tree / "docs"))
	assert svc.root == (tree / "docs").resolve()
	assert svc.displayPath(svc.root) == "/"
	assert svc.displayPath(svc.root / "nested") == "/nested/"


# EOF
