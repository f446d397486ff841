import mimetypes
import os
import posixpath
import stat
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import NamedTuple

mimetypes.init()

DEFAULT_CONTENT_TYPE: str = "application/octet-stream"

# Extensions for which `mimetypes` only reports an encoding, not a type.
MIME_TYPES: dict[str, str] = dict(
	bz2="application/x-bzip2",
	gz="application/gzip",
	xz="application/x-xz",
	br="application/x-brotli",
)


class EntryKind(Enum):
	Directory = "directory"
	RegularFile = "file"
	Symlink = "symlink"
	Other = "other"


class AccessError(Enum):
	NotFound = "not-found"
	OutsideRoot = "outside-root"
	Denied = "denied"
	IOError = "io-error"
	Timeout = "timeout"


class FileAccessError(Exception):
	"""Raised by filesystem operations instead of the underlying `OSError`,
	so that callers can map the failure kind to a response."""

	def __init__(self, kind: AccessError, path: Path | str | None = None):
		super().__init__(f"{kind.value}: {path}" if path else kind.value)
		self.kind: AccessError = kind
		self.path: Path | str | None = path

	@staticmethod
	def FromOSError(error: OSError, path: Path | str) -> "FileAccessError":
		if isinstance(error, FileNotFoundError) or isinstance(
			error, NotADirectoryError
		):
			return FileAccessError(AccessError.NotFound, path)
		elif isinstance(error, PermissionError):
			return FileAccessError(AccessError.Denied, path)
		else:
			return FileAccessError(AccessError.IOError, path)


class FileEntry(NamedTuple):
	kind: EntryKind
	name: str
	path: Path

	@property
	def isDirectory(self) -> bool:
		return self.kind is EntryKind.Directory


def contentType(path: Path | str) -> str:
	"""Guesses the content type from the given path's extension, defaulting
	to `application/octet-stream`."""
	name = PurePosixPath(str(path)).name
	ext = name.rsplit(".", 1)[-1].lower() if "." in name else ""
	return (
		res
		if (res := MIME_TYPES.get(ext))
		else mimetypes.guess_type(name, strict=False)[0] or DEFAULT_CONTENT_TYPE
	)


def kindFromMode(mode: int, isLink: bool = False) -> EntryKind:
	if stat.S_ISDIR(mode):
		return EntryKind.Directory
	elif stat.S_ISREG(mode):
		return EntryKind.Symlink if isLink else EntryKind.RegularFile
	else:
		return EntryKind.Other


def entryKind(path: Path) -> EntryKind:
	"""Classifies the entry at `path`. Links are followed, a link to a
	directory is a directory, and a link to a regular file is a `Symlink`."""
	try:
		is_link = path.is_symlink()
		return kindFromMode(os.stat(path).st_mode, is_link)
	except OSError as e:
		raise FileAccessError.FromOSError(e, path) from e
	except ValueError as e:
		# Embedded null bytes
		raise FileAccessError(AccessError.NotFound, path) from e


def displayText(text: str) -> str:
	"""Returns `text` with the undecodable bytes of file names (kept as
	surrogates by `os`) replaced, so that it can be encoded as UTF-8."""
	return text.encode("utf-8", "surrogateescape").decode("utf-8", "replace")


def normalizePath(path: str) -> str:
	"""Normalizes a request path to `/`-prefixed form without `.` or `..`
	segments. `..` never climbs above `/`."""
	return posixpath.normpath("/" + path.lstrip("/"))


def resolveWithin(root: Path, path: str) -> Path:
	"""Joins the request `path` onto `root`, raising `OutsideRoot` when the
	canonical target (symlinks included) lands outside of `root`. The root
	is expected to be canonical already. The returned path is the joined
	one, so that links can still be told apart from their targets."""
	relative = normalizePath(path).lstrip("/")
	local_path = root / relative if relative else root
	try:
		canonical = local_path.resolve()
	except (OSError, RuntimeError, ValueError) as e:
		# RuntimeError is a symlink loop on older Pythons
		raise FileAccessError(AccessError.NotFound, path) from e
	if not (canonical == root or canonical.is_relative_to(root)):
		raise FileAccessError(AccessError.OutsideRoot, path)
	return local_path


def listDirectory(path: Path) -> list[FileEntry]:
	"""Lists the immediate children of `path`, sorted by name. Children
	that can't be classified are listed as regular files."""
	res: list[FileEntry] = []
	try:
		with os.scandir(path) as entries:
			for item in entries:
				child = Path(item.path)
				try:
					kind = entryKind(child)
				except FileAccessError:
					kind = EntryKind.RegularFile
				res.append(FileEntry(kind=kind, name=item.name, path=child))
	except OSError as e:
		raise FileAccessError.FromOSError(e, path) from e
	return sorted(res, key=lambda _: _.name)


def readBytes(path: Path) -> bytes:
	try:
		with open(path, "rb") as f:
			return f.read()
	except OSError as e:
		raise FileAccessError.FromOSError(e, path) from e


# EOF
