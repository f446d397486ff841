import asyncio
import errno
import socket
import threading
from signal import SIGINT, SIGTERM
from typing import Any, Callable, Literal, NamedTuple

from .config import HOST, LOG_REQUESTS, PORT
from .http.model import HTTPBodyWriter, HTTPProcessingStatus, HTTPRequest, HTTPResponse
from .http.parser import HTTPParser
from .model import Application, Service, mount
from .utils.logging import LogLevel, debug, error, event, exception, info, logged, warning

# --
# == Socket server
#
# Serves an application over plain asyncio sockets. Each accepted client
# gets its own task, which parses requests as data comes in and writes
# responses back in order, keeping the connection open between requests
# unless the client asks otherwise.


class ServerOptions(NamedTuple):
	host: str = HOST
	port: int = PORT
	backlog: int = 1_024
	# How often the accept loop checks that it should still be running
	polling: float = 1.0
	readsize: int = 4_096
	# Idle delay after which a kept-alive connection is closed
	keepalive: float = 15.0
	logRequests: bool = LOG_REQUESTS
	condition: Callable[[], bool] | None = None
	stopSignals: bool = True


OPTIONS: ServerOptions = ServerOptions()


def rawResponse(status: str, text: str) -> bytes:
	"""A response for when the application can't produce one."""
	return (
		f"HTTP/1.1 {status}\r\n"
		"Content-Type: text/plain\r\n"
		f"Content-Length: {len(text)}\r\n"
		"Connection: close\r\n"
		"\r\n"
		f"{text}"
	).encode("ascii")


SERVER_BAD_REQUEST: bytes = rawResponse("400 Bad Request", "Bad Request")
SERVER_ERROR: bytes = rawResponse("500 Internal Server Error", "Internal Server Error")


class ServerState:
	def __init__(self) -> None:
		self.isRunning: bool = True

	def stop(self) -> None:
		info("Server stopping")
		self.isRunning = False

	def onException(
		self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]
	) -> None:
		if e := context.get("exception"):
			exception(e)
		else:
			warning("Event loop error", Message=context.get("message"))


class AIOSocketBodyWriter(HTTPBodyWriter):
	def __init__(self, client: socket.socket, loop: asyncio.AbstractEventLoop):
		super().__init__()
		self.client: socket.socket = client
		self.loop: asyncio.AbstractEventLoop = loop

	async def _writeBytes(
		self, chunk: bytes | None | Literal[False], more: bool = False
	) -> bool:
		if chunk:
			await self.loop.sock_sendall(self.client, chunk)
		return True


class AIOSocketServer:
	@classmethod
	async def OnRequest(
		cls,
		app: Application,
		client: socket.socket,
		*,
		loop: asyncio.AbstractEventLoop,
		options: ServerOptions,
	) -> None:
		"""Serves the requests sent on the `client` socket, closing it
		once the connection is over."""
		cid = f"{id(client):x}"
		buffer = bytearray(options.readsize)
		parser = HTTPParser()
		writer = AIOSocketBodyWriter(client, loop)
		status = HTTPProcessingStatus.Processing
		requests = 0
		responses = 0
		try:
			while status is HTTPProcessingStatus.Processing and not writer.shouldClose:
				try:
					n = await asyncio.wait_for(
						loop.sock_recv_into(client, buffer), timeout=options.keepalive
					)
				except asyncio.TimeoutError:
					status = HTTPProcessingStatus.Timeout
					break
				if not n:
					status = HTTPProcessingStatus.NoData
					break
				# A single read may hold several pipelined requests
				for atom in parser.feed(bytes(buffer[:n])):
					if atom is HTTPProcessingStatus.BadFormat:
						warning("Malformed request", Client=cid)
						await writer.write(SERVER_BAD_REQUEST)
						status = atom
						break
					elif isinstance(atom, HTTPRequest):
						requests += 1
						options.logRequests and event(atom.method, atom.path)
						keepAlive = atom.keepAlive
						if await cls.SendResponse(atom, app, writer, keepAlive=keepAlive):
							responses += 1
						if not keepAlive:
							writer.shouldClose = True
							break
			if status is HTTPProcessingStatus.Timeout and requests != responses:
				warning("Client timed out", Requests=requests, Responses=responses)
			logged(LogLevel.Debug) and debug(
				"Connection closed",
				Client=cid,
				Status=status.name,
				Requests=requests,
				Responses=responses,
			)
		except Exception as e:
			exception(e, f"Connection {cid} failed")
		finally:
			client.close()

	@staticmethod
	async def SendResponse(
		request: HTTPRequest,
		app: Application,
		writer: HTTPBodyWriter,
		*,
		keepAlive: bool = True,
	) -> HTTPResponse | None:
		"""Writes the application's response to `request`, or a bare `500`
		when there is none, in which case the connection is to be closed."""
		try:
			res = await app.process(request)
		except Exception as e:
			exception(e, f"Could not process {request.method} {request.path}")
			res = None
		if res is None:
			writer.shouldClose = True
			await writer.write(SERVER_ERROR)
			return None
		if not keepAlive:
			res.setHeader("Connection", "close")
		try:
			await writer.write(res.head())
			await writer.write(res.body)
		except (BrokenPipeError, ConnectionResetError):
			writer.shouldClose = True
			return None
		return res

	@classmethod
	async def Serve(cls, app: Application, options: ServerOptions = OPTIONS) -> None:
		server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
		server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
		server.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
		try:
			server.bind((options.host, options.port))
		except OSError:
			error(f"Unable to bind to {options.host}:{options.port}", "HOSTPORTERR")
			server.close()
			raise
		server.listen(options.backlog)
		server.setblocking(False)

		loop = asyncio.get_running_loop()
		state = ServerState()
		# Signal handlers can only be set from the main thread
		if options.stopSignals and threading.current_thread() is threading.main_thread():
			for sig in (SIGINT, SIGTERM):
				loop.add_signal_handler(sig, state.stop)
		loop.set_exception_handler(state.onException)

		tasks: set[asyncio.Task[None]] = set()
		await app.start()
		info("Server listening", icon="🚀", Host=options.host, Port=options.port)
		try:
			while state.isRunning and (not options.condition or options.condition()):
				try:
					client, _ = await asyncio.wait_for(
						loop.sock_accept(server), timeout=options.polling
					)
				except asyncio.TimeoutError:
					continue
				except OSError as e:
					if e.errno == errno.EMFILE:
						# Out of file descriptors, we wait for connections to close
						await asyncio.sleep(0.1)
					else:
						exception(e)
					continue
				task = loop.create_task(
					cls.OnRequest(app, client, loop=loop, options=options)
				)
				tasks.add(task)
				task.add_done_callback(tasks.discard)
		finally:
			server.close()
			for task in tasks:
				task.cancel()
			await asyncio.gather(*tasks, return_exceptions=True)
			await app.stop()


def run(
	*components: Application | Service,
	host: str = HOST,
	port: int = PORT,
	backlog: int = OPTIONS.backlog,
	condition: Callable[[], bool] | None = None,
	polling: float = OPTIONS.polling,
	logRequests: bool = LOG_REQUESTS,
	keepalive: float = OPTIONS.keepalive,
) -> None:
	"""Mounts the components and serves them until interrupted."""
	options = ServerOptions(
		host=host,
		port=port,
		backlog=backlog,
		condition=condition,
		polling=polling,
		logRequests=logRequests,
		keepalive=keepalive,
	)
	try:
		asyncio.run(AIOSocketServer.Serve(mount(*components), options))
	except KeyboardInterrupt:
		event("ManualShutdown")
	event("EOK")


# EOF
