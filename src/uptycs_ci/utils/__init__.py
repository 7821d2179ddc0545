"""Utility modules for the CI scanner."""

from .logger import get_logger
from .config import RunConfig
from .exceptions import *

__all__ = ["get_logger", "RunConfig"]
