from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Literal, NamedTuple, TypeVar

from ..utils.io import DEFAULT_ENCODING
from .api import ResponseFactory
from .status import HTTP_STATUS

T = TypeVar("T")

# -----------------------------------------------------------------------------
#
# HELPERS
#
# -----------------------------------------------------------------------------

HEADER_NAMES: dict[str, str] = {}


def headername(name: str) -> str:
	"""Returns the canonical `Kebab-Case` form of a header name."""
	key = name.lower()
	if (res := HEADER_NAMES.get(key)) is None:
		res = HEADER_NAMES[key] = "-".join(_.capitalize() for _ in key.split("-"))
	return res


# -----------------------------------------------------------------------------
#
# DATA MODEL
#
# -----------------------------------------------------------------------------


class HTTPRequestLine(NamedTuple):
	method: str
	path: str
	query: str
	protocol: str


class HTTPHeaders(NamedTuple):
	"""Headers by canonical name, along with the parsed values that
	matter for processing."""

	headers: dict[str, str]
	contentType: str | None = None
	contentLength: int | None = None


class HTTPProcessingStatus(Enum):
	"""States reported by the parser and the connection loop."""

	Processing = "processing"
	Body = "body"
	Timeout = "timeout"
	NoData = "nodata"
	BadFormat = "badformat"


class HTTPRequestError(Exception):
	"""Raised by handlers to abort with an error response, which is
	a `500` unless `status` is given. The message is never sent."""

	def __init__(self, message: str, status: int | None = None):
		super().__init__(message)
		self.message: str = message
		self.status: int | None = status


# -----------------------------------------------------------------------------
#
# BODY
#
# -----------------------------------------------------------------------------


class HTTPBodyBlob(NamedTuple):
	payload: bytes = b""
	length: int = 0


class HTTPBodyWriter(ABC):
	"""Writes the serialized heads and bodies of responses to a client.
	Setting `shouldClose` tells the connection to stop after the
	current response."""

	__slots__ = ["shouldClose"]

	def __init__(self) -> None:
		self.shouldClose: bool = False

	async def write(self, body: HTTPBodyBlob | bytes | None) -> bool:
		match body:
			case None:
				return True
			case bytes():
				return await self._writeBytes(body)
			case HTTPBodyBlob():
				return await self._writeBytes(body.payload)
			case _:
				raise ValueError(f"Unsupported body format: {body!r}")

	@abstractmethod
	async def _writeBytes(
		self, chunk: bytes | None | Literal[False], more: bool = False
	) -> bool: ...


# -----------------------------------------------------------------------------
#
# REQUEST
#
# -----------------------------------------------------------------------------


class HTTPRequest(ResponseFactory["HTTPResponse"]):
	"""A parsed request, which is also the factory for its responses."""

	__slots__ = ["method", "path", "query", "protocol", "_headers", "_body"]

	def __init__(
		self,
		method: str,
		path: str,
		query: dict[str, str] | None = None,
		headers: HTTPHeaders | None = None,
		body: HTTPBodyBlob | None = None,
		protocol: str = "HTTP/1.1",
	):
		super().__init__()
		self.method: str = method
		self.path: str = path
		self.query: dict[str, str] = query or {}
		self.protocol: str = protocol
		self._headers: HTTPHeaders = headers or HTTPHeaders({})
		self._body: HTTPBodyBlob = body or HTTPBodyBlob()

	@property
	def headers(self) -> dict[str, str]:
		return self._headers.headers

	@property
	def body(self) -> HTTPBodyBlob:
		return self._body

	@property
	def contentLength(self) -> int | None:
		return self._headers.contentLength

	@property
	def keepAlive(self) -> bool:
		"""HTTP/1.1 connections persist unless closed, earlier ones only
		when asked."""
		connection = (self.header("Connection") or "").lower()
		return (
			connection == "keep-alive"
			if self.protocol == "HTTP/1.0"
			else connection != "close"
		)

	def header(self, name: str) -> str | None:
		return self.headers.get(headername(name))

	def param(self, name: str, default: T | None = None) -> str | T | None:
		return self.query.get(name, default)

	def respond(
		self,
		content: Any = None,
		contentType: str | None = None,
		status: int = 200,
		headers: dict[str, str] | None = None,
		message: str | None = None,
	) -> "HTTPResponse":
		return HTTPResponse.Create(
			content,
			contentType,
			headers,
			status=status,
			message=message,
			protocol=self.protocol,
		)

	def __repr__(self) -> str:
		return f"(HTTPRequest {self.method} {self.path} {self.protocol})"


# -----------------------------------------------------------------------------
#
# RESPONSE
#
# -----------------------------------------------------------------------------


class HTTPResponse:
	"""A response with its body loaded in memory, so that its length is
	always known."""

	__slots__ = ["protocol", "status", "message", "headers", "body"]

	@staticmethod
	def Create(
		content: str | bytes | None = None,
		contentType: str | None = None,
		headers: dict[str, str] | None = None,
		*,
		status: int = 200,
		message: str | None = None,
		protocol: str = "HTTP/1.1",
	) -> "HTTPResponse":
		match content:
			case None:
				payload = b""
			case str():
				payload = content.encode(DEFAULT_ENCODING)
			case bytes():
				payload = content
			case _:
				raise ValueError(f"Unsupported content {type(content)}: {content!r}")
		values = {headername(k): v for k, v in (headers or {}).items()}
		if contentType is not None:
			values["Content-Type"] = contentType
		values["Content-Length"] = str(len(payload))
		return HTTPResponse(
			protocol,
			status,
			message,
			HTTPHeaders(values, contentType, len(payload)),
			None if content is None else HTTPBodyBlob(payload, len(payload)),
		)

	def __init__(
		self,
		protocol: str,
		status: int,
		message: str | None,
		headers: HTTPHeaders,
		body: HTTPBodyBlob | None = None,
	):
		self.protocol: str = protocol
		self.status: int = status
		self.message: str = message or HTTP_STATUS.get(status, "Unknown Status")
		self.headers: HTTPHeaders = headers
		self.body: HTTPBodyBlob | None = body

	@property
	def contentType(self) -> str | None:
		return self.getHeader("Content-Type")

	@property
	def payload(self) -> bytes:
		return self.body.payload if self.body else b""

	def getHeader(self, name: str) -> str | None:
		return self.headers.headers.get(headername(name))

	def setHeader(self, name: str, value: str | int | None) -> "HTTPResponse":
		key = headername(name)
		if value is None:
			self.headers.headers.pop(key, None)
		else:
			self.headers.headers[key] = str(value)
		return self

	def head(self) -> bytes:
		"""Returns the status line and headers, ready to be written."""
		lines = [f"{self.protocol} {self.status} {self.message}"]
		lines += [f"{k}: {v}" for k, v in self.headers.headers.items()]
		return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")

	def __repr__(self) -> str:
		return f"(HTTPResponse {self.status} {self.message} {self.headers.headers})"


# EOF
