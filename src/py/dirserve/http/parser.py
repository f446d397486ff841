from enum import Enum
from typing import Iterator, Literal, TypeAlias

from ..utils.io import LineParser
from .model import (
	HTTPBodyBlob,
	HTTPHeaders,
	HTTPProcessingStatus,
	HTTPRequest,
	HTTPRequestLine,
	headername,
)

# --
# == HTTP Parser
#
# An incremental parser for HTTP/1.x requests: chunks are fed as they
# are received, and atoms are produced as soon as they are complete, the
# last one for each request being the `HTTPRequest` itself. Only bodies
# with a `Content-Length` are supported, chunked transfer encoding is not.

HTTPAtom: TypeAlias = HTTPRequestLine | HTTPHeaders | HTTPProcessingStatus | HTTPRequest


class MessageParser:
	"""Parses the request line, like `GET /index.html HTTP/1.1`."""

	__slots__ = ["line", "value"]

	def __init__(self) -> None:
		self.line: LineParser = LineParser()
		self.value: HTTPRequestLine | None = None

	def reset(self) -> "MessageParser":
		self.line.reset()
		self.value = None
		return self

	def feed(self, chunk: bytes, start: int = 0) -> tuple[bool | None, int]:
		"""Returns `True` once the line is parsed, `False` when it's
		malformed and `None` when more data is needed."""
		line, read = self.line.feed(chunk, start)
		# Empty lines between pipelined requests are skipped
		if not line:
			return None, read
		try:
			method, target, protocol = line.decode("ascii").split(" ")
		except (UnicodeDecodeError, ValueError):
			return False, read
		if not method or not target.startswith("/"):
			return False, read
		path, _, query = target.partition("?")
		self.value = HTTPRequestLine(method, path, query, protocol)
		return True, read


class HeadersParser:
	"""Parses header lines up to the empty line that ends them."""

	__slots__ = ["line", "headers", "contentType", "contentLength"]

	def __init__(self) -> None:
		self.line: LineParser = LineParser()
		self.headers: dict[str, str] = {}
		self.contentType: str | None = None
		self.contentLength: int | None = None

	def reset(self) -> "HeadersParser":
		self.line.reset()
		self.headers = {}
		self.contentType = None
		self.contentLength = None
		return self

	def flush(self) -> HTTPHeaders:
		res = HTTPHeaders(self.headers, self.contentType, self.contentLength)
		self.reset()
		return res

	def feed(
		self, chunk: bytes, start: int = 0
	) -> tuple[str | Literal[False] | None, int]:
		"""Returns the name of the parsed header, `False` at the end of the
		headers, and `None` when there is nothing to report."""
		line, read = self.line.feed(chunk, start)
		if line is None:
			return None, read
		elif not line:
			return False, read
		# Header values are bytes, latin-1 maps them all
		name, sep, value = line.decode("latin-1").partition(":")
		if not sep:
			return None, read
		name = headername(name.strip())
		value = value.strip()
		match name:
			case "Content-Length":
				self.contentLength = int(value) if value.isdigit() else None
			case "Content-Type":
				self.contentType = value
		self.headers[name] = value
		return name, read


class BodyLengthParser:
	"""Reads a body of a known length."""

	__slots__ = ["expected", "read", "data"]

	def __init__(self) -> None:
		self.expected: int = 0
		self.read: int = 0
		self.data: list[bytes] = []

	def reset(self, length: int = 0) -> "BodyLengthParser":
		self.expected = length
		self.read = 0
		self.data = []
		return self

	def flush(self) -> HTTPBodyBlob:
		res = HTTPBodyBlob(b"".join(self.data), self.read)
		self.reset()
		return res

	def feed(self, chunk: bytes, start: int = 0) -> tuple[bool | None, int]:
		"""Returns `True` once the whole body is read."""
		n = min(len(chunk) - start, self.expected - self.read)
		self.data.append(chunk[start : start + n])
		self.read += n
		return (True if self.read >= self.expected else None), n


class ParserState(Enum):
	Line = "line"
	Headers = "headers"
	Body = "body"


class HTTPParser:
	__slots__ = ["state", "message", "headers", "body", "requestLine", "requestHeaders"]

	def __init__(self) -> None:
		self.state: ParserState = ParserState.Line
		self.message: MessageParser = MessageParser()
		self.headers: HeadersParser = HeadersParser()
		self.body: BodyLengthParser = BodyLengthParser()
		self.requestLine: HTTPRequestLine | None = None
		self.requestHeaders: HTTPHeaders | None = None

	def reset(self) -> "HTTPParser":
		self.state = ParserState.Line
		self.message.reset()
		self.headers.reset()
		self.body.reset()
		self.requestLine = None
		self.requestHeaders = None
		return self

	def request(self, body: HTTPBodyBlob) -> HTTPRequest:
		"""Creates the request from what was parsed so far, and gets ready
		for the next one."""
		line = self.requestLine
		if line is None:
			raise RuntimeError("Parser has no request line")
		res = HTTPRequest(
			method=line.method,
			path=line.path,
			query=parseQuery(line.query),
			headers=self.requestHeaders,
			body=body,
			protocol=line.protocol,
		)
		self.state = ParserState.Line
		self.message.reset()
		return res

	def feed(self, chunk: bytes) -> Iterator[HTTPAtom]:
		offset = 0
		while offset < len(chunk):
			match self.state:
				case ParserState.Line:
					parsed, read = self.message.feed(chunk, offset)
					if parsed is False:
						yield HTTPProcessingStatus.BadFormat
						self.reset()
						return
					elif parsed and (line := self.message.value):
						self.requestLine = line
						self.requestHeaders = None
						self.state = ParserState.Headers
						yield line
				case ParserState.Headers:
					name, read = self.headers.feed(chunk, offset)
					if name is False:
						headers = self.headers.flush()
						self.requestHeaders = headers
						yield headers
						if headers.contentLength:
							self.body.reset(headers.contentLength)
							self.state = ParserState.Body
							yield HTTPProcessingStatus.Body
						else:
							yield self.request(HTTPBodyBlob())
				case ParserState.Body:
					done, read = self.body.feed(chunk, offset)
					if done:
						yield self.request(self.body.flush())
			offset += read


def parseQuery(text: str) -> dict[str, str]:
	"""Parses `a=1&b` as `{"a": "1", "b": ""}`. Values are kept encoded."""
	res: dict[str, str] = {}
	for item in text.split("&") if text else ():
		key, _, value = item.partition("=")
		res[key] = value
	return res


# EOF
