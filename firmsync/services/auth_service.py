"""Credential strategy for requests to the GitHub API."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from collections.abc import Generator

    from firmsync.config import Settings

logger = logging.getLogger(__name__)


class BearerAuth(httpx.Auth):
    """Sends a personal access token as an ``Authorization: Bearer`` header."""

    def __init__(self, token: str) -> None:
        self.token = token

    def auth_flow(
        self, request: httpx.Request
    ) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers["Authorization"] = f"Bearer {self.token}"
        yield request


def parse_user_pass(user_pass: str) -> httpx.BasicAuth:
    """Parse a ``user:password`` string into HTTP basic credentials."""
    username, sep, password = user_pass.partition(":")
    if not sep or not username:
        msg = "GitHub credentials must have the form user:password"
        raise ValueError(msg)
    return httpx.BasicAuth(username, password)


def resolve_auth(
    settings: Settings,
    user_pass: str = "",
    token: str = "",
) -> httpx.Auth | None:
    """Pick the single credential strategy for this run.

    Precedence: explicit user:password, explicit token, GITHUB_USER plus
    GITHUB_AUTH_TOKEN from the environment, GITHUB_TOKEN, then anonymous.
    """
    if user_pass:
        return parse_user_pass(user_pass)
    if token:
        return BearerAuth(token)
    if settings.github_user and settings.github_auth_token:
        return httpx.BasicAuth(settings.github_user, settings.github_auth_token)
    if settings.github_user or settings.github_auth_token:
        logger.warning(
            "Ignoring incomplete basic credentials: GITHUB_USER and GITHUB_AUTH_TOKEN "
            "must both be set"
        )
    if settings.github_token:
        return BearerAuth(settings.github_token)
    return None


def describe_auth(auth: httpx.Auth | None) -> str:
    """Name the credential scheme in use, for log lines."""
    if auth is None:
        return "none"
    if isinstance(auth, httpx.BasicAuth):
        return "basic"
    if isinstance(auth, BearerAuth):
        return "bearer"
    return type(auth).__name__
