# ruff: noqa: F403, F401
"""Schemas package initialization."""

from .api_keys import *
from .base import *
from .chat import *
from .file import *
