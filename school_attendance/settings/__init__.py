"""Default settings entry point used by development and the test suite."""

from .base import *  # noqa: F401,F403
