from abc import ABC, abstractmethod
from typing import Any, Generic, Iterable, TypeVar

from .status import HTTP_STATUS

T = TypeVar("T")

# --
# == Response API
#
# The helpers that handlers use to create responses from a request,
# independently of how responses are modelled.


class ResponseFactory(ABC, Generic[T]):
	@abstractmethod
	def respond(
		self,
		content: Any = None,
		contentType: str | None = None,
		status: int = 200,
		headers: dict[str, str] | None = None,
		message: str | None = None,
	) -> T: ...

	# --
	# === Success

	def respondText(
		self, content: str | bytes, contentType: str = "text/plain", status: int = 200
	) -> T:
		return self.respond(content, contentType, status)

	def respondHTML(self, html: str | bytes | Iterable[str], status: int = 200) -> T:
		"""Responds with an HTML document, given whole or as fragments."""
		content = html if isinstance(html, (str, bytes)) else "".join(html)
		return self.respond(content, "text/html", status)

	def respondBytes(
		self,
		content: bytes,
		contentType: str = "application/octet-stream",
		status: int = 200,
	) -> T:
		return self.respond(content, contentType, status)

	# --
	# === Errors
	#
	# Error bodies default to the status message, which is all the client
	# gets to know about the failure.

	def error(
		self,
		status: int,
		content: str | None = None,
		contentType: str = "text/plain",
		headers: dict[str, str] | None = None,
	) -> T:
		message = HTTP_STATUS.get(status, "Server Error")
		return self.respond(
			message if content is None else content,
			contentType,
			status,
			headers,
			message,
		)

	def notAuthorized(self, content: str | None = None) -> T:
		return self.error(403, content)

	def notFound(self, content: str | None = None) -> T:
		return self.error(404, content)

	def notAllowed(self, allowed: Iterable[str] = ("GET",)) -> T:
		return self.error(405, headers={"Allow": ", ".join(allowed)})

	def timedOut(self, content: str | None = None) -> T:
		return self.error(504, content)

	def fail(self, content: str | None = None, *, status: int = 500) -> T:
		return self.error(status, content)


# EOF
