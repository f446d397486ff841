DEFAULT_ENCODING: str = "utf8"
EOL: bytes = b"\r\n"


class LineParser:
	"""Splits a stream of chunks in lines terminated by `eol`. Partial
	lines are buffered across calls to `feed`."""

	__slots__ = ["buffer", "eol", "scan"]

	def __init__(self, eol: bytes = EOL) -> None:
		self.buffer: bytearray = bytearray()
		self.eol: bytes = eol
		# Where to resume looking for `eol` in the buffer
		self.scan: int = 0

	def reset(self) -> "LineParser":
		self.buffer.clear()
		self.scan = 0
		return self

	def feed(self, chunk: bytes, start: int = 0) -> tuple[bytes | None, int]:
		"""Consumes `chunk` from `start` until the end of a line. Returns
		the line without its terminator, or `None` if the line is not
		complete, and the number of bytes consumed."""
		buffered = len(self.buffer)
		self.buffer += chunk[start:]
		end = self.buffer.find(self.eol, self.scan)
		if end == -1:
			# The terminator may be split across chunks
			self.scan = max(0, len(self.buffer) - len(self.eol) + 1)
			return None, len(chunk) - start
		line = bytes(self.buffer[:end])
		self.reset()
		return line, end + len(self.eol) - buffered


# EOF
