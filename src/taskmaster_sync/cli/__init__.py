"""
CLI - Command line interface for taskmaster-sync.
"""

from .app import main, run
from .exit_codes import ExitCode


__all__ = ["ExitCode", "main", "run"]
