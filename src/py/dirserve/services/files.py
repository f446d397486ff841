import asyncio
from pathlib import Path
from typing import Callable, NamedTuple, TypeVar
from urllib.parse import quote, unquote

from ..config import TIMEOUT
from ..decorators import on
from ..model import Service
from ..http.model import HTTPRequest, HTTPResponse
from ..utils.files import (
	AccessError,
	EntryKind,
	FileAccessError,
	FileEntry,
	contentType,
	displayText,
	entryKind,
	listDirectory,
	readBytes,
	resolveWithin,
)
from ..utils.htmpl import H, Node, html
from ..utils.logging import debug, logged, LogLevel, warning

T = TypeVar("T")

LISTING_TITLE: str = "Directory Listing"

UNHANDLED_TYPE: str = "unhandled type"

# Undecodable bytes in file names round-trip through URLs as `%XX`
URL_ERRORS: str = "surrogateescape"


class ListingItem(NamedTuple):
	# The name as displayed, the href keeps the original bytes
	name: str
	href: str
	isDirectory: bool

	@staticmethod
	def FromEntry(entry: FileEntry) -> "ListingItem":
		# Directories get a trailing slash so that browsers resolve their
		# children relative to them.
		href = quote(entry.name, errors=URL_ERRORS) + ("/" if entry.isDirectory else "")
		return ListingItem(displayText(entry.name), href, entry.isDirectory)


class DirectoryListing(NamedTuple):
	title: str
	path: str
	items: tuple[ListingItem, ...]


class FileService(Service):
	"""Serves the files and directories under `root`. Directories are
	rendered as HTML listings, files are sent whole with a content type
	guessed from their extension."""

	def __init__(self, root: str | Path | None = None, *, timeout: float = TIMEOUT):
		super().__init__()
		# The root is canonical, as resolved paths are checked against it
		self.root: Path = Path(root or ".").resolve()
		self.timeout: float = timeout

	@on(GET=("/", "/{path:any}"))
	async def read(self, request: HTTPRequest, path: str = "") -> HTTPResponse:
		return await self.resolve(request, path)

	async def resolve(self, request: HTTPRequest, path: str) -> HTTPResponse:
		"""Resolves the captured `path` relative to the root and renders the
		entry it points to."""
		try:
			local_path = await self.run(
				resolveWithin, self.root, unquote(path, errors=URL_ERRORS)
			)
			kind = await self.run(entryKind, local_path)
			# Only directories can be requested with a trailing slash
			if path.endswith("/") and kind is not EntryKind.Directory:
				raise FileAccessError(AccessError.NotFound, path)
			logged(LogLevel.Debug) and debug("Resolved", Path=path, Kind=kind.value)
			match kind:
				case EntryKind.Directory:
					return request.respondHTML(await self.renderDirectoryListing(local_path))
				case EntryKind.RegularFile | EntryKind.Symlink:
					data = await self.run(readBytes, local_path)
					return request.respondBytes(data, contentType(local_path))
				case _:
					warning("Unhandled entry type", Path=path)
					return request.fail(UNHANDLED_TYPE)
		except FileAccessError as e:
			warning("Could not access path", Path=path, Error=e.kind.value)
			return self.onAccessError(request, e)

	def onAccessError(self, request: HTTPRequest, error: FileAccessError) -> HTTPResponse:
		match error.kind:
			case AccessError.NotFound:
				return request.notFound()
			case AccessError.OutsideRoot | AccessError.Denied:
				return request.notAuthorized()
			case AccessError.Timeout:
				return request.timedOut()
			case _:
				return request.fail()

	async def run(self, operation: Callable[..., T], *args: Path | str) -> T:
		"""Runs the blocking filesystem `operation` in a worker thread,
		bounded by the service's timeout."""
		try:
			return await asyncio.wait_for(
				asyncio.to_thread(operation, *args), timeout=self.timeout
			)
		except asyncio.TimeoutError as e:
			raise FileAccessError(AccessError.Timeout, args[-1] if args else None) from e
		except OSError as e:
			raise FileAccessError.FromOSError(e, args[-1] if args else "") from e

	def displayPath(self, localPath: Path) -> str:
		"""Returns the path of `localPath` as seen from the URL, with
		a trailing slash. The root is `/`."""
		relative = localPath.relative_to(self.root).as_posix()
		return "/" if relative == "." else f"/{relative}/"

	async def listing(self, localPath: Path) -> DirectoryListing:
		entries = await self.run(listDirectory, localPath)
		return DirectoryListing(
			title=LISTING_TITLE,
			path=self.displayPath(localPath),
			items=tuple(ListingItem.FromEntry(_) for _ in entries),
		)

	async def renderDirectoryListing(self, localPath: Path) -> str:
		return self.renderListing(await self.listing(localPath))

	def renderListing(self, listing: DirectoryListing) -> str:
		items: list[Node] = [H.li(H.a(_.name, href=_.href)) for _ in listing.items]
		return "".join(
			html(
				H.html(
					H.head(
						H.meta(charset="utf-8"),
						H.title(listing.title),
						# Bare hrefs resolve against the listed directory even
						# when the URL has no trailing slash.
						H.base(href=quote(listing.path, errors=URL_ERRORS)),
					),
					H.body(
						H.h1(f"{listing.title} for {displayText(listing.path)}"),
						H.ul(items),
					),
				),
				doctype="html",
			)
		)


# EOF
