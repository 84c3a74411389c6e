"""
GitHub credentials.

A token is taken from GITHUB_TOKEN or GH_TOKEN; failing that, from the
GitHub CLI's stored login (``gh auth token``).
"""

import logging
import os
import subprocess
from collections.abc import Callable, Mapping

from taskmaster_sync.core.exceptions import AuthenticationError


logger = logging.getLogger("GitHubAuth")

TOKEN_ENV_VARS = ("GITHUB_TOKEN", "GH_TOKEN")


def token_from_gh_cli(run: Callable[..., subprocess.CompletedProcess] = subprocess.run) -> str | None:
    """Ask the gh CLI for its token. Returns None if gh is missing or logged out."""
    try:
        completed = run(["gh", "auth", "token"], capture_output=True, text=True, timeout=10, check=False)
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"gh CLI unavailable: {e}")
        return None
    if completed.returncode != 0:
        logger.debug(f"gh auth token failed: {completed.stderr.strip()}")
        return None
    return completed.stdout.strip() or None


def resolve_github_token(
    env: Mapping[str, str] | None = None,
    run: Callable[..., subprocess.CompletedProcess] = subprocess.run,
) -> str:
    """
    Find a GitHub token.

    Raises:
        AuthenticationError: If no source yields a token
    """
    env = os.environ if env is None else env
    for name in TOKEN_ENV_VARS:
        value = env.get(name, "").strip()
        if value:
            logger.debug(f"Using GitHub token from {name}")
            return value

    token = token_from_gh_cli(run)
    if token:
        logger.debug("Using GitHub token from gh CLI")
        return token

    raise AuthenticationError(
        "No GitHub token found. Set GITHUB_TOKEN or run 'gh auth login' "
        "(the token needs the 'project' scope)."
    )
