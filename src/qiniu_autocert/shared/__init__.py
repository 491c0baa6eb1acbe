"""Shared utilities for qiniu-auto-cert."""

from .config import Config, load_env_file
from .python_logger_config import setup_python_logging

__all__ = ['Config', 'load_env_file', 'setup_python_logging']
