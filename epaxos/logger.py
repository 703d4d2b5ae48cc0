"""Levelled, categorised logging to the console, a file and extra writers."""

from __future__ import annotations

import sys
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum, IntEnum
from pathlib import Path
from typing import IO


class LogLevel(IntEnum):
    """Severity of a log message."""

    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3
    FATAL = 4

    def __str__(self) -> str:
        return self.name


class LogCategory(str, Enum):
    """Subsystem that produced a log message."""

    CONSENSUS = "CONSENSUS"
    REPLICA = "REPLICA"
    EXECUTION = "EXECUTION"
    NETWORK = "NETWORK"
    RPC = "RPC"
    STORAGE = "STORAGE"
    CLIENT = "CLIENT"
    GENERAL = "GENERAL"
    PREACCEPT = "PREACCEPT"
    ACCEPT = "ACCEPT"
    COMMIT = "COMMIT"
    DEPENDENCY = "DEPENDENCY"

    def __str__(self) -> str:
        return self.value


@dataclass
class LoggerConfig:
    """Settings used to build an :class:`EPaxosLogger`."""

    level: LogLevel
    replica_id: int
    log_dir: str
    log_file_name: str
    console_output: bool
    file_output: bool


def default_logger_config(replica_id: int) -> LoggerConfig:
    """Configuration logging at INFO to the console and ``logs/``."""
    return LoggerConfig(
        level=LogLevel.INFO,
        replica_id=replica_id,
        log_dir="logs",
        log_file_name=f"epaxos_replica_{replica_id}.log",
        console_output=True,
        file_output=True,
    )


def _open_append(path: Path | str) -> IO[str]:
    return open(path, "a", encoding="utf-8", buffering=1)


class EPaxosLogger:
    """Logger that prefixes every line with time, level, replica, category and caller."""

    def __init__(self, config: LoggerConfig) -> None:
        self._lock = threading.Lock()
        self._level = LogLevel(config.level)
        self._replica_id = config.replica_id
        # ``None`` inside the list stands for whatever sys.stdout is at write time.
        self._console: list[IO[str] | None] | None = [None] if config.console_output else None
        self._file: IO[str] | None = None
        if config.file_output:
            log_dir = Path(config.log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)
            self._file = _open_append(log_dir / config.log_file_name)

    @property
    def level(self) -> LogLevel:
        return self._level

    @property
    def replica_id(self) -> int:
        return self._replica_id

    def __enter__(self) -> EPaxosLogger:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _format(self, level: LogLevel, category, message: str, args: tuple, frame) -> str:
        now = datetime.now()
        timestamp = now.strftime("%Y-%m-%d %H:%M:%S.") + f"{now.microsecond // 1000:03d}"
        text = message % args if args else message
        file_info = ""
        if frame is not None:
            file_info = f"{Path(frame.f_code.co_filename).name}:{frame.f_lineno}"
        return (
            f"[{timestamp}] [{level.name}] [R{self._replica_id}] "
            f"[{LogCategory(category).value}] [{file_info}] {text}"
        )

    def _log(self, level: LogLevel, category, message: str, args: tuple) -> None:
        if level < self._level:
            return
        try:
            frame = sys._getframe(2)
        except ValueError:
            frame = None
        line = self._format(level, category, message, args, frame) + "\n"
        with self._lock:
            if self._console is not None:
                for writer in self._console:
                    (sys.stdout if writer is None else writer).write(line)
            if self._file is not None:
                self._file.write(line)
        if level == LogLevel.FATAL:
            raise SystemExit(1)

    def debug(self, category, message: str, *args) -> None:
        self._log(LogLevel.DEBUG, category, message, args)

    def info(self, category, message: str, *args) -> None:
        self._log(LogLevel.INFO, category, message, args)

    def warn(self, category, message: str, *args) -> None:
        self._log(LogLevel.WARN, category, message, args)

    def error(self, category, message: str, *args) -> None:
        self._log(LogLevel.ERROR, category, message, args)

    def fatal(self, category, message: str, *args) -> None:
        """Log at FATAL and terminate with exit status 1."""
        self._log(LogLevel.FATAL, category, message, args)

    def set_level(self, level: LogLevel) -> None:
        with self._lock:
            self._level = LogLevel(level)

    def close(self) -> None:
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None

    def rotate_log(self, new_path) -> None:
        """Close the current log file and continue logging to ``new_path``."""
        with self._lock:
            if self._file is None:
                raise RuntimeError("file logging not enabled")
            self._file.close()
            self._file = None
            self._file = _open_append(new_path)

    def add_writer(self, writer: IO[str]) -> None:
        """Send console output to ``writer`` as well as (if enabled) stdout."""
        with self._lock:
            self._console = [None, writer] if self._console is not None else [writer]


_global_logger: EPaxosLogger | None = None
_init_done = False
_init_lock = threading.Lock()


def get_logger() -> EPaxosLogger | None:
    """Return the process-wide logger, or None before initialisation."""
    return _global_logger


def init_logger(config: LoggerConfig) -> EPaxosLogger | None:
    """Create the process-wide logger; only the first call has any effect."""
    global _global_logger, _init_done
    with _init_lock:
        if _init_done:
            return _global_logger
        _init_done = True
        _global_logger = EPaxosLogger(config)
        return _global_logger