"""Common utilities for tmod_extract packages."""

from .config import ConfigLoader
from .logging import setup_logging, get_logger, LogContext
from .logging_config import LoggingConfig
from .errors import TModExtractError, ConfigurationError
from .path_utils import normalize_path, normalize_entry_path, is_escaping_path
from .checksums import compute_sha1, compute_sha1_hex, SHA1_DIGEST_SIZE

__all__ = [
    'ConfigLoader',
    'LoggingConfig',
    'setup_logging',
    'get_logger',
    'LogContext',
    'TModExtractError',
    'ConfigurationError',
    'normalize_path',
    'normalize_entry_path',
    'is_escaping_path',
    'compute_sha1',
    'compute_sha1_hex',
    'SHA1_DIGEST_SIZE',
]
