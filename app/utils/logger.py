import json
import sys
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from app.core.config import settings


class LogLevel(Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    SUCCESS = "SUCCESS"


# SUCCESS prints at INFO threshold
_LEVEL_RANK = {
    LogLevel.DEBUG: 10,
    LogLevel.INFO: 20,
    LogLevel.SUCCESS: 20,
    LogLevel.WARNING: 30,
    LogLevel.ERROR: 40,
}

# Extras whose values must never be printed
SENSITIVE_KEYS = {"password", "password_hash", "signed_request", "secret", "app_secret", "token", "id_token"}


class Colors:
    """ANSI color codes for console output"""
    RESET = '\033[0m'
    BOLD = '\033[1m'
    DIM = '\033[2m'

    WHITE = '\033[37m'
    BRIGHT_BLACK = '\033[90m'
    BRIGHT_RED = '\033[91m'
    BRIGHT_GREEN = '\033[92m'
    BRIGHT_YELLOW = '\033[93m'
    BRIGHT_BLUE = '\033[94m'
    BRIGHT_CYAN = '\033[96m'


class FunnyJokeLogger:
    """Console logger with colorized, single-line output and masked secrets"""

    def __init__(self, service_name: str = "FUNNYJOKE", enable_colors: bool = None, min_level: str = None):
        self.service_name = service_name.upper()
        self.enable_colors = settings.LOG_COLORS if enable_colors is None else enable_colors
        level_name = (min_level or settings.LOG_LEVEL or "INFO").upper()
        self.min_rank = _LEVEL_RANK.get(LogLevel.__members__.get(level_name, LogLevel.INFO), 20)

        self.level_colors = {
            LogLevel.DEBUG: Colors.BRIGHT_CYAN,
            LogLevel.INFO: Colors.BRIGHT_BLUE,
            LogLevel.WARNING: Colors.BRIGHT_YELLOW,
            LogLevel.ERROR: Colors.BRIGHT_RED,
            LogLevel.SUCCESS: Colors.BRIGHT_GREEN,
        }

    def _colorize(self, text: str, color: str) -> str:
        if not self.enable_colors:
            return text
        return f"{color}{text}{Colors.RESET}"

    @staticmethod
    def _render_value(key: str, value: Any) -> str:
        if key.lower() in SENSITIVE_KEYS and value is not None:
            return "***"
        if isinstance(value, (dict, list)):
            rendered = json.dumps(value, default=str, separators=(',', ':'))
            return rendered[:100] + "..." if len(rendered) > 100 else rendered
        return str(value)

    def format(self, level: LogLevel, message: str, context: Optional[str] = None, **kwargs) -> str:
        """Build one log line: [TIME] [SERVICE/CONTEXT] [LEVEL] message | k=v"""
        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
        service_context = self.service_name
        if context:
            service_context += f"/{context.upper()}"

        line = " ".join([
            self._colorize(f"[{timestamp}]", Colors.DIM),
            self._colorize(f"[{service_context}]", Colors.BRIGHT_BLACK),
            self._colorize(f"[{level.value}]", self.level_colors.get(level, Colors.WHITE) + Colors.BOLD),
            message,
        ])

        if kwargs:
            extras = ", ".join(f"{key}={self._render_value(key, value)}" for key, value in kwargs.items())
            line += self._colorize(f" | {extras}", Colors.DIM)
        return line

    def _log(self, level: LogLevel, message: str, context: Optional[str] = None, **kwargs):
        if _LEVEL_RANK[level] < self.min_rank:
            return
        stream = sys.stderr if level is LogLevel.ERROR else sys.stdout
        print(self.format(level, message, context, **kwargs), file=stream)
        stream.flush()

    def debug(self, message: str, context: Optional[str] = None, **kwargs):
        self._log(LogLevel.DEBUG, message, context, **kwargs)

    def info(self, message: str, context: Optional[str] = None, **kwargs):
        self._log(LogLevel.INFO, message, context, **kwargs)

    def warning(self, message: str, context: Optional[str] = None, **kwargs):
        self._log(LogLevel.WARNING, message, context, **kwargs)

    def error(self, message: str, context: Optional[str] = None, **kwargs):
        self._log(LogLevel.ERROR, message, context, **kwargs)

    def success(self, message: str, context: Optional[str] = None, **kwargs):
        self._log(LogLevel.SUCCESS, message, context, **kwargs)


# Global logger instances for different services
auth_logger = FunnyJokeLogger("AUTH")
identity_logger = FunnyJokeLogger("IDENTITY")
facebook_logger = FunnyJokeLogger("FACEBOOK")
db_logger = FunnyJokeLogger("DATABASE")
api_logger = FunnyJokeLogger("API")


def get_logger(service_name: str) -> FunnyJokeLogger:
    """Get a logger instance for a specific service"""
    return FunnyJokeLogger(service_name)
