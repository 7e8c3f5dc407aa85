"""
Logging utilities for safe log output.

Two concerns:
- A LogRecord factory that escapes newlines in log arguments so provider
  supplied values (source names, page bodies) cannot forge log entries.
- URL redaction. Stream URLs routinely carry credentials in the query string
  or the userinfo part; redact_url() masks them before they reach a log line.

Call configure_logging() once at startup; it installs the factory.
"""

import logging
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from config import get_env_settings

_ORIGINAL_FACTORY = logging.getLogRecordFactory()

REDACTED = "***"


def _sanitize_value(value):
    """Escape newlines and carriage returns in a value for safe logging."""
    if isinstance(value, str):
        return value.replace('\r\n', '\\r\\n').replace('\r', '\\r').replace('\n', '\\n')
    return value


def _safe_record_factory(*args, **kwargs):
    """LogRecord factory that sanitizes args to prevent log injection."""
    record = _ORIGINAL_FACTORY(*args, **kwargs)
    if record.args:
        if isinstance(record.args, dict):
            record.args = {k: _sanitize_value(v) for k, v in record.args.items()}
        elif isinstance(record.args, tuple):
            record.args = tuple(_sanitize_value(a) for a in record.args)
    return record


def install_safe_logging():
    """Install the sanitizing LogRecord factory globally."""
    logging.setLogRecordFactory(_safe_record_factory)


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Root logging setup for the host application. Call once at startup.

    Without an explicit level the LOG_LEVEL environment setting is used.
    """
    if level is None:
        level = get_env_settings().log_level
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
    logging.basicConfig(level=numeric_level, format=LOG_FORMAT)
    # basicConfig leaves an already configured root logger alone
    logging.getLogger().setLevel(numeric_level)
    install_safe_logging()


def redact_url(url: str) -> str:
    """Mask query values and userinfo credentials in a URL.

    Path segments are left alone. Xtream style URLs put the username and
    password in the path, but the path is also what identifies the stream
    when reading logs, so it stays visible.
    Anything that does not parse is returned as-is.
    """
    if not url:
        return url
    try:
        parts = urlsplit(url)
        netloc = parts.netloc
        if "@" in netloc:
            netloc = f"{REDACTED}@{netloc.rsplit('@', 1)[1]}"
        query = parts.query
        if query:
            pairs = parse_qsl(query, keep_blank_values=True)
            query = urlencode([(k, REDACTED) for k, _ in pairs], safe="*")
        return urlunsplit((parts.scheme, netloc, parts.path, query, parts.fragment))
    except ValueError:
        return url
