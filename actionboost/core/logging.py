import logging
import logging.handlers
import sys
import time
import traceback
from pathlib import Path
from types import TracebackType

from actionboost.config import Settings

LOG_LINE_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_DIR = Path(__file__).resolve().parents[2] / "logs"

# Loggers that install their own handlers; they are pointed at ours instead.
_SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi")
# Client libraries that log request URLs (including provider keys) at DEBUG.
_QUIET_LOGGERS = ("httpx", "httpcore", "openai", "tavily")
_TRACEBACK_TAIL = 5

_log_file_path: Path | None = None


class TruncatedFormatter(logging.Formatter):
  """Console formatter that keeps the exception header and the innermost frames only."""

  def formatException(self, ei: tuple[type[BaseException] | None, BaseException | None, TracebackType | None]) -> str:  # noqa: N802
    lines = traceback.format_exception(*ei)
    if len(lines) <= _TRACEBACK_TAIL + 1:
      return "".join(lines)
    skipped = len(lines) - _TRACEBACK_TAIL - 1
    return "".join([lines[0], f"    ... {skipped} frame line(s) omitted ...\n", *lines[-_TRACEBACK_TAIL:]])


def _dash_namer(default_name: str) -> str:
  # actionboost_x.log.1 -> actionboost_x.log-1 so rotated files keep sorting next to the live one.
  base, _, index = default_name.rpartition(".")
  return f"{base}-{index}" if base and index.isdigit() else default_name


def setup_logging(settings: Settings, log_dir: Path = LOG_DIR) -> Path:
  """Route root and server loggers to stdout plus a rotating file; return the file path."""
  try:
    log_dir.mkdir(parents=True, exist_ok=True)
  except OSError as exc:
    raise RuntimeError(f"Cannot create log directory {log_dir}: {exc}") from exc
  log_path = log_dir / f"actionboost_{time.strftime('%Y%m%d_%H%M%S')}.log"

  console = logging.StreamHandler(sys.stdout)
  console.setFormatter(TruncatedFormatter(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT))
  # The file keeps full tracebacks.
  rotating = logging.handlers.RotatingFileHandler(log_path, encoding="utf-8", maxBytes=settings.log_max_bytes, backupCount=settings.log_backup_count)
  rotating.namer = _dash_namer
  rotating.setFormatter(logging.Formatter(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT))
  handlers: list[logging.Handler] = [console, rotating]

  logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO, handlers=handlers, force=True)
  for name in _SERVER_LOGGERS:
    server_logger = logging.getLogger(name)
    server_logger.handlers = list(handlers)
    server_logger.propagate = False
  for name in _QUIET_LOGGERS:
    logging.getLogger(name).setLevel(logging.WARNING)
  return log_path


def _initialize_logging(settings: Settings) -> None:
  """Install handlers once per process."""
  global _log_file_path
  if _log_file_path is not None:
    return
  _log_file_path = setup_logging(settings)
  logging.getLogger(__name__).info("Logging to %s (env=%s, debug=%s)", _log_file_path, settings.environment, settings.debug)
