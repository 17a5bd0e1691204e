"""Logging setup for multi-integration-mcp.

- stderr handler with a plain formatter, always on
- optional batched SupabaseHandler writing JSON entries to auth_logs
- [TAG] prefixes ([CALLBACK], [STORE], ...) become a separate column
"""

import atexit
import logging
import re
import sys
import threading
from contextlib import asynccontextmanager
from queue import Empty, Queue
from typing import Optional

SERVICE_NAME = "multi-integration-mcp"
LOG_TABLE = "auth_logs"

_TAG_PATTERN = re.compile(r"\[([A-Z_]+)\]\s*(.*)", re.DOTALL)


def split_tag(message: str) -> tuple[Optional[str], str]:
    match = _TAG_PATTERN.match(message)
    if match:
        return match.group(1), match.group(2)
    return None, message


class JSONFormatter(logging.Formatter):
    """Turns a record into the row shape of the auth_logs table."""

    def __init__(self, service: str = SERVICE_NAME, server_url: str = None):
        super().__init__()
        self.service = service
        self.server_url = server_url

    def to_entry(self, record: logging.LogRecord) -> dict:
        tag, message = split_tag(record.getMessage())
        entry = {
            "service": self.service,
            "server_url": self.server_url,
            "level": record.levelname,
            "tag": tag,
            "message": message,
            "logger": record.name,
            "extra": {
                "function": record.funcName,
                "line": record.lineno,
            },
        }
        if record.exc_info:
            entry["extra"]["exception"] = self.formatException(record.exc_info)
        return entry

    def format(self, record: logging.LogRecord) -> str:
        tag, message = split_tag(record.getMessage())
        return f"{tag or '-'} {message}"


class PlainFormatter(logging.Formatter):
    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


class SupabaseHandler(logging.Handler):
    """Buffers log entries and inserts them into Supabase in batches.

    A batch is sent when batch_size entries are queued or every
    flush_interval seconds from a background thread, whichever is first.
    """

    def __init__(
        self,
        supabase_client,
        table: str = LOG_TABLE,
        batch_size: int = 20,
        flush_interval: float = 10.0,
    ):
        super().__init__()
        self.supabase = supabase_client
        self.table = table
        self.batch_size = batch_size
        self.flush_interval = flush_interval

        self._queue: Queue = Queue()
        self._shutdown = threading.Event()
        self._flush_thread = threading.Thread(target=self._flush_worker, daemon=True)
        self._flush_thread.start()

        atexit.register(self.close)

    def emit(self, record: logging.LogRecord):
        try:
            formatter = self.formatter if isinstance(self.formatter, JSONFormatter) else JSONFormatter()
            self._queue.put(formatter.to_entry(record))
            if self._queue.qsize() >= self.batch_size:
                self.flush()
        except Exception:
            self.handleError(record)

    def _flush_worker(self):
        while not self._shutdown.wait(self.flush_interval):
            if not self._queue.empty():
                self.flush()

    def flush(self):
        entries = []
        while len(entries) < self.batch_size * 2:
            try:
                entries.append(self._queue.get_nowait())
            except Empty:
                break
        if not entries:
            return
        try:
            self.supabase.table(self.table).insert(entries).execute()
        except Exception as e:
            # stderr only; logging here would recurse into this handler
            print(f"[WARNING] Failed to send logs to Supabase: {e}", file=sys.stderr)

    def close(self):
        self._shutdown.set()
        self.flush()
        super().close()


_supabase_handler: Optional[SupabaseHandler] = None


def setup_logging(
    server_url: str = None,
    supabase_client=None,
    level: int = logging.INFO,
) -> logging.Logger:
    """Configure the root logger.

    Args:
        server_url: Public URL of this deployment, recorded with each remote entry.
        supabase_client: Supabase client for remote logging; stderr only when None.
        level: Root log level.

    Returns:
        Configured root logger.
    """
    global _supabase_handler

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(level)
    stderr_handler.setFormatter(PlainFormatter())
    root_logger.addHandler(stderr_handler)

    supabase_enabled = False
    if supabase_client:
        try:
            _supabase_handler = SupabaseHandler(supabase_client)
            _supabase_handler.setLevel(logging.INFO)
            _supabase_handler.setFormatter(JSONFormatter(server_url=server_url))
            root_logger.addHandler(_supabase_handler)
            supabase_enabled = True
        except Exception as e:
            print(f"[WARNING] Supabase logging setup failed: {e}", file=sys.stderr)

    # Supabase and the token exchanger both use httpx
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    if supabase_enabled:
        logger.info(f"[STARTUP] Supabase logging enabled ({LOG_TABLE})")
    else:
        logger.info("[STARTUP] Supabase logging disabled (no client)")

    return root_logger


def flush_logs():
    """Send any queued entries to Supabase now."""
    if _supabase_handler:
        _supabase_handler.flush()


def flush_on_shutdown(lifespan):
    """Wrap an ASGI lifespan so queued log entries are sent when it ends."""

    @asynccontextmanager
    async def wrapped(app):
        try:
            async with lifespan(app) as state:
                yield state
        finally:
            flush_logs()

    return wrapped
