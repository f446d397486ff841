from os import getenv
from pathlib import Path
from typing import NamedTuple

# NOTE: These are read once at import time.

PORT: int = int(getenv("PORT", 8000))

# The file server is meant to be reachable from the local network
HOST: str = getenv("HOST", "0.0.0.0")  # nosec: B104

ROOT: str = getenv("DIRSERVE_ROOT", ".")

# Upper bound, in seconds, for any single filesystem operation
TIMEOUT: float = float(getenv("DIRSERVE_TIMEOUT", 30))

LOG_REQUESTS: bool = getenv("DIRSERVE_LOG_REQUESTS", "1") == "1"


class ServeConfig(NamedTuple):
	"""The configuration of a file server, built once at startup and
	passed down to the listener and the file service."""

	root: Path = Path(ROOT)
	host: str = HOST
	port: int = PORT
	timeout: float = TIMEOUT
	logRequests: bool = LOG_REQUESTS

	@staticmethod
	def FromEnv(
		*,
		root: str | Path | None = None,
		host: str | None = None,
		port: int | None = None,
		timeout: float | None = None,
	) -> "ServeConfig":
		"""Creates a configuration from the environment, with the given
		values taking precedence."""
		return ServeConfig(
			root=Path(root if root is not None else ROOT),
			host=host or HOST,
			port=PORT if port is None else port,
			timeout=TIMEOUT if timeout is None else timeout,
		)


# EOF
