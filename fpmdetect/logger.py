"""
fpmdetect - Logger Module

Component-prefixed logging for the detection steps. Lines go to stderr so
the JSON report printed on stdout can be piped.
"""

import sys
from datetime import datetime

DEBUG = 10
INFO = 20
WARN = 30
ERROR = 40

LEVEL_NAMES = {DEBUG: "DEBUG", INFO: "INFO", WARN: "WARN", ERROR: "ERROR"}


class Logger:
    """Logger writing "[time] [Component] LEVEL: message" lines

    debug enables DEBUG lines; quiet hides INFO lines (warnings and errors
    are always written).
    """

    def __init__(self, debug: bool = False, component: str = "Detect", stream=None,
                 quiet: bool = False):
        self.debug_enabled = debug
        self.quiet = quiet and not debug
        self.component = component
        self.stream = stream

    @property
    def threshold(self) -> int:
        if self.debug_enabled:
            return DEBUG
        return WARN if self.quiet else INFO

    def log(self, level: int, message: str) -> None:
        if level < self.threshold:
            return
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        stream = self.stream or sys.stderr
        print(f"[{timestamp}] [{self.component}] {LEVEL_NAMES[level]}: {message}",
              file=stream, flush=True)

    def debug(self, message: str) -> None:
        self.log(DEBUG, message)

    def info(self, message: str) -> None:
        self.log(INFO, message)

    def warn(self, message: str) -> None:
        self.log(WARN, message)

    def error(self, message: str) -> None:
        self.log(ERROR, message)

    def failure(self, error: BaseException) -> None:
        """Log a detection failure, then its chained causes at debug level

        The detector reports a generic not-found error; the step that
        actually failed is kept as __cause__.
        """
        self.error(str(error))
        cause = error.__cause__
        while cause is not None:
            self.debug(f"caused by {type(cause).__name__}: {cause}")
            cause = cause.__cause__

    def create_child(self, component: str) -> 'Logger':
        """Logger with the same settings and another component prefix"""
        return Logger(self.debug_enabled, component, self.stream, self.quiet)


def setup_logger(debug: bool = False, quiet: bool = False, component: str = "Detect") -> Logger:
    return Logger(debug=debug, component=component, quiet=quiet)
