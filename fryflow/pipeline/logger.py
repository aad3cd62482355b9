"""Run logging for index and quant commands.

A PipelineLogger attaches two handlers to the ``fryflow`` logger for the
duration of one run: a file under ``<output>/logs`` that keeps everything
the run logged, and a console handler. Messages from every fryflow module
reach both because they all log below ``fryflow``.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, TextIO


class ColoredFormatter(logging.Formatter):
    """Formatter that wraps the level name in an ANSI color."""

    def __init__(self, fmt: str, datefmt: str, colors: Dict[str, str]):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.colors = colors

    def format(self, record: logging.LogRecord) -> str:
        color = self.colors.get(record.levelname)
        if color is None:
            return super().format(record)
        # copy so the file handler still sees the plain level name
        colored = logging.makeLogRecord(record.__dict__)
        colored.levelname = f"{color}{record.levelname}{self.colors['RESET']}"
        return super().format(colored)


class PipelineLogger:
    """File and console logging for a single run.

    Parameters
    ----------
    log_dir : str or Path
        Directory for log files (``<output>/logs``); created if missing
    log_level : str
        Level name for both handlers
    log_name : str
        Logger the handlers are attached to. Default: "fryflow"
    command : str, optional
        Command being run; becomes part of the log file name
    stream : TextIO, optional
        Console stream. Default: ``sys.stderr``

    Example
    -------
    >>> with PipelineLogger("out/logs", command="quant") as run_log:
    ...     run_log.log_stage_start("gpl", "alevin-fry generate-permit-list")
    ...     run_log.log_stage_complete("gpl", 45.2)
    """

    COLORS = {
        "DEBUG": "\033[0;36m",
        "INFO": "\033[0;34m",
        "WARNING": "\033[1;33m",
        "ERROR": "\033[0;31m",
        "CRITICAL": "\033[1;31m",
        "RESET": "\033[0m",
    }
    FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    CONSOLE_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

    def __init__(
        self,
        log_dir,
        log_level: str = "INFO",
        log_name: str = "fryflow",
        command: Optional[str] = None,
        stream: Optional[TextIO] = None,
    ):
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        stem = f"fryflow_{command}" if command else "fryflow"
        self.log_file = self.log_dir / f"{stem}_{datetime.now():%Y%m%d_%H%M%S}.log"

        self.log_level = logging.getLevelName(log_level.upper())
        if not isinstance(self.log_level, int):
            raise ValueError(f"Unknown log level '{log_level}'")
        self.stream = stream if stream is not None else sys.stderr
        self.logger = logging.getLogger(log_name)
        self._handlers: List[logging.Handler] = []
        self._saved = (self.logger.level, self.logger.propagate)

    def __enter__(self) -> "PipelineLogger":
        self.setup()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def setup(self) -> None:
        """Attach the file and console handlers."""
        file_handler = logging.FileHandler(self.log_file, mode="w", encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(self.FILE_FORMAT, "%Y-%m-%d %H:%M:%S"))

        console_handler = logging.StreamHandler(self.stream)
        console_handler.setFormatter(self._console_formatter())

        self._saved = (self.logger.level, self.logger.propagate)
        for handler in (file_handler, console_handler):
            handler.setLevel(self.log_level)
            self.logger.addHandler(handler)
            self._handlers.append(handler)
        self.logger.setLevel(self.log_level)
        # the CLI's root handler would print every message a second time
        self.logger.propagate = False

    def close(self) -> None:
        """Detach and close the handlers added by setup()."""
        for handler in self._handlers:
            self.logger.removeHandler(handler)
            handler.close()
        self._handlers = []
        self.logger.setLevel(self._saved[0])
        self.logger.propagate = self._saved[1]

    def _console_formatter(self) -> logging.Formatter:
        isatty = getattr(self.stream, "isatty", None)
        if isatty is not None and isatty():
            return ColoredFormatter(self.CONSOLE_FORMAT, "%H:%M:%S", self.COLORS)
        return logging.Formatter(self.CONSOLE_FORMAT, "%H:%M:%S")

    def log_plan(self, command: str, stage_ids: Sequence[str]) -> None:
        """Log the stages a run is about to execute, in order."""
        self.logger.info("Running %s with %d stage(s): %s", command, len(stage_ids), " -> ".join(stage_ids))

    def log_stage_start(self, stage_id: str, stage_name: str) -> None:
        """Log the start of a stage.

        Parameters
        ----------
        stage_id : str
            Stage identifier (e.g., "map", "gpl")
        stage_name : str
            The program and subcommand being run
        """
        separator = "=" * 80
        self.logger.info(separator)
        self.logger.info("Starting stage %s: %s", stage_id, stage_name)
        self.logger.info(separator)

    def log_stage_complete(self, stage_id: str, duration: float) -> None:
        self.logger.info(
            "Stage %s completed successfully in %s", stage_id, self.format_duration(duration)
        )

    def log_stage_error(self, stage_id: str, error: str) -> None:
        self.logger.error("Stage %s failed: %s", stage_id, error)

    def log_run_summary(self, completed: Sequence[str], total: int, elapsed: float) -> None:
        """Log how many stages finished and the run's total wall-clock time."""
        self.logger.info(
            "%d/%d stage(s) completed in %s", len(completed), total, self.format_duration(elapsed)
        )

    @staticmethod
    def format_duration(seconds: float) -> str:
        """Human-readable duration: "45.2s", "1m 23s" or "2h 15m"."""
        if seconds < 60:
            return f"{seconds:.1f}s"
        minutes, secs = divmod(int(seconds), 60)
        if minutes < 60:
            return f"{minutes}m {secs}s"
        hours, minutes = divmod(minutes, 60)
        return f"{hours}h {minutes}m"
