import os
import sys
import time
from contextvars import ContextVar
from enum import Enum
from typing import Any, NamedTuple, TextIO, TypeAlias

from .term import Term

# --
# Structured logging to stderr. Entries have an origin, a level and
# a context of key-value pairs, and are written as a single colored line.

ERR: TextIO = sys.stderr

TValue: TypeAlias = bool | int | float | str | bytes | None | list[Any] | dict[str, Any]

LogOrigin: ContextVar[str] = ContextVar("LogOrigin", default="dirserve")


class LogType(Enum):
	Message = "message"
	Event = "event"


class LogLevel(Enum):
	Debug = 0
	Info = 10
	Warning = 30
	# A handled error
	Error = 40
	# An unhandled error
	Exception = 50


LEVEL_COLOR: dict[LogLevel, int] = {
	LogLevel.Debug: 31,
	LogLevel.Info: 75,
	LogLevel.Warning: 202,
	LogLevel.Error: 160,
	LogLevel.Exception: 124,
}


def parseLevel(name: str | None, default: LogLevel = LogLevel.Info) -> LogLevel:
	"""Parses a level name like `debug` or `WARNING`, falling back to `default`."""
	key = (name or "").strip().capitalize()
	return LogLevel[key] if key in LogLevel.__members__ else default


LOG_LEVEL: LogLevel = parseLevel(os.getenv("DIRSERVE_LOG_LEVEL"))


class LogEntry(NamedTuple):
	origin: str
	time: float
	type: LogType
	level: LogLevel
	# The message for messages, the name for events
	text: str
	value: TValue = None
	context: dict[str, TValue] | None = None
	icon: str | None = None


def formatData(value: Any) -> str:
	match value:
		case None | () | [] | {}:
			return "◌"
		case bool():
			return "✓" if value else "✗"
		case float():
			return f"{value:0.2f}"
		case str():
			return repr(value) if " " in value else value
		case dict():
			return " ".join(
				f"{Term.BOLD}{k}{Term.RESET}={formatData(v)}" for k, v in value.items()
			)
		case list() | tuple():
			return ",".join(formatData(_) for _ in value)
		case _:
			return str(value)


def logged(level: LogLevel) -> bool:
	"""Tells if entries of the given level are written, so that callers
	can skip building costly entries with `logged(…) and debug(…)`."""
	return level.value >= LOG_LEVEL.value


def send(entry: LogEntry) -> LogEntry:
	if not logged(entry.level):
		return entry
	clr = Term.Color(LEVEL_COLOR[entry.level])
	icon = f" {entry.icon}" if entry.icon else ""
	value = "" if entry.value is None else f" {formatData(entry.value)}"
	if entry.type is LogType.Event:
		head = f"{clr}{Term.BOLD}[{entry.origin}] {entry.text}{Term.RESET}{value}"
	else:
		head = f"{clr}{Term.BOLD}[{entry.origin}]{Term.RESET}{icon} {entry.text}{value}"
	ERR.write(f"{head} {formatData(entry.context)}{Term.RESET}\n")
	ERR.flush()
	return entry


def log(
	level: LogLevel,
	text: str,
	value: TValue = None,
	*,
	type: LogType = LogType.Message,
	origin: str | None = None,
	icon: str | None = None,
	context: dict[str, TValue] | None = None,
) -> LogEntry:
	return send(
		LogEntry(
			origin=origin or LogOrigin.get(),
			time=time.time(),
			type=type,
			level=level,
			text=text,
			value=value,
			context=context,
			icon=icon,
		)
	)


def debug(
	message: str, *, origin: str | None = None, icon: str | None = None, **context: TValue
) -> LogEntry:
	return log(LogLevel.Debug, message, origin=origin, icon=icon, context=context)


def info(
	message: str, *, origin: str | None = None, icon: str | None = None, **context: TValue
) -> LogEntry:
	return log(LogLevel.Info, message, origin=origin, icon=icon, context=context)


def warning(
	message: str, *, origin: str | None = None, icon: str | None = None, **context: TValue
) -> LogEntry:
	return log(LogLevel.Warning, message, origin=origin, icon=icon, context=context)


def error(
	message: str,
	code: int | str | None,
	*,
	origin: str | None = None,
	icon: str | None = None,
	**context: TValue,
) -> LogEntry:
	return log(
		LogLevel.Error, message, code, origin=origin, icon=icon, context=context
	)


def event(
	name: str, value: Any = None, *, origin: str | None = None, **context: TValue
) -> LogEntry:
	return log(
		LogLevel.Info, name, value, type=LogType.Event, origin=origin, context=context
	)


def exception(
	exception: BaseException,
	message: str | None = None,
) -> BaseException:
	"""Writes the exception with its traceback to stderr, and returns
	it so that it can be used like `raise exception(e)`."""
	try:
		prefix = f"{message}: " if message else ""
		lines = [f"!!! EXCP {prefix}[{type(exception).__name__}] {exception}"]
		tb = exception.__traceback__
		while tb:
			code = tb.tb_frame.f_code
			lines.append(
				f"... in {code.co_name:15s} at {tb.tb_lineno:4d} in {code.co_filename}"
			)
			tb = tb.tb_next
		ERR.write(Term.Color(LEVEL_COLOR[LogLevel.Exception]) + "\n".join(lines) + f"{Term.RESET}\n")
		ERR.flush()
	except Exception:  # nosec: B110
		# This is called from exception handlers, it must not raise
		pass
	return exception


# EOF
