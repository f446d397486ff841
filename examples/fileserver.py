"""
Static File Server Example

This serves a directory given on the command line, next to a small
service that takes precedence over the file routes.
Features shown:
- Configuring the file service root and timeout
- Mounting more than one service
- Route priorities

Usage:
    python fileserver.py [DIRECTORY]

Test with:
    curl http://localhost:8000/            # Directory listing
    curl http://localhost:8000/README.md   # A file, if there is one
    curl http://localhost:8000/_ping       # Handled by the ping service
"""

import sys

from dirserve import HTTPRequest, HTTPResponse, Service, on, run
from dirserve.services.files import FileService
from dirserve.utils.logging import info


class Ping(Service):
	# The file routes match any path, so this one needs a higher priority
	@on(priority=10, GET="/_ping")
	def ping(self, request: HTTPRequest) -> HTTPResponse:
		return request.respondText("pong")


if __name__ == "__main__":
	root = sys.argv[1] if len(sys.argv) > 1 else "."
	files = FileService(root, timeout=5.0)
	info("Serving files", Root=str(files.root))
	run(Ping(), files)

# EOF
