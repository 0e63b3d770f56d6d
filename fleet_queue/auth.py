"""Token sources and the admin authorization gate."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
import logging
import os
from pathlib import Path
from typing import Protocol

import httpx

from .crypto import read_token_file
from .models import QueueItem


logger = logging.getLogger(__name__)


class TokenProvider(Protocol):
    """Supplies the bearer token for API and hub calls."""

    def get_token(self) -> str | None: ...


class StaticTokenProvider:
    """Token fixed at construction time."""

    def __init__(self, token: str | None):
        self._token = token

    def get_token(self) -> str | None:
        return self._token or None


class EnvTokenProvider:
    """Reads the token from an environment variable on every call."""

    def __init__(self, var_name: str = "FLEET_API_TOKEN"):
        self.var_name = var_name

    def get_token(self) -> str | None:
        return os.environ.get(self.var_name) or None


class EncryptedFileTokenProvider:
    """Decrypts a token file written by `fleet-queue encrypt-token`.

    The file is read lazily and cached after the first successful decrypt.
    """

    def __init__(self, file_path: Path, passphrase: str):
        self.file_path = file_path
        self._passphrase = passphrase
        self._token: str | None = None

    def get_token(self) -> str | None:
        if self._token is None:
            try:
                self._token = read_token_file(self.file_path, self._passphrase)
            except (FileNotFoundError, ValueError) as e:
                logger.error(f"Could not load token from {self.file_path}: {e}")
                return None
        return self._token


# -- Authorization gate --


@dataclass(frozen=True)
class AuthorizationContext:
    """What the user is trying to do when authorization is requested."""

    action: str
    item: QueueItem

    @property
    def title(self) -> str:
        return "Admin Authorization Required"

    @property
    def message(self) -> str:
        return (
            f'{self.action.capitalize()} of queue item "{self.item.mission_name}" requires '
            "admin authorization. Please enter admin credentials to proceed."
        )


@dataclass(frozen=True)
class AuthorizationResult:
    authorized: bool
    admin_username: str | None = None
    message: str | None = None


class AuthorizationGate(Protocol):
    """Pass/fail decision taken before a protected action is forwarded."""

    async def authorize(self, context: AuthorizationContext) -> bool: ...


class AllowAllGate:
    """Authorizes everything; used for privileged sessions and tests."""

    async def authorize(self, context: AuthorizationContext) -> bool:
        return True


class DenyAllGate:
    """Refuses everything; used when no interactive prompt is available."""

    async def authorize(self, context: AuthorizationContext) -> bool:
        logger.info(f"Refusing {context.action} of item {context.item.id}: no authorization prompt")
        return False


# (context) -> (username, password) or None when the user backs out
CredentialsPrompt = Callable[[AuthorizationContext], Awaitable[tuple[str, str] | None]]


class AdminCredentialGate:
    """Asks for admin credentials and verifies them with the server.

    The prompt is supplied by the caller (a click prompt, a textual modal or a
    test double), so the gate itself has no UI.
    """

    VERIFY_PATH = "/api/Auth/verify-admin"

    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider,
        prompt: CredentialsPrompt,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider
        self.prompt = prompt
        self._http = http_client
        self.timeout = timeout
        self.last_result: AuthorizationResult | None = None

    async def authorize(self, context: AuthorizationContext) -> bool:
        credentials = await self.prompt(context)
        if credentials is None:
            self.last_result = AuthorizationResult(authorized=False, message="Authorization cancelled")
            return False

        username, password = credentials
        if not username.strip() or not password.strip():
            self.last_result = AuthorizationResult(
                authorized=False, message="Please enter both username and password"
            )
            return False

        self.last_result = await self.verify(username, password)
        if self.last_result.authorized:
            logger.info(f"Admin {self.last_result.admin_username} authorized {context.action} of {context.item.id}")
        else:
            logger.warning(f"Admin verification failed: {self.last_result.message}")
        return self.last_result.authorized

    async def verify(self, username: str, password: str) -> AuthorizationResult:
        """Check admin credentials against the server."""
        token = self.token_provider.get_token()
        if not token:
            return AuthorizationResult(authorized=False, message="No authentication token available")

        url = f"{self.base_url}{self.VERIFY_PATH}"
        headers = {"Authorization": f"Bearer {token}"}
        try:
            if self._http is not None:
                response = await self._http.post(
                    url, json={"username": username, "password": password}, headers=headers
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(
                        url, json={"username": username, "password": password}, headers=headers
                    )
        except httpx.HTTPError as e:
            return AuthorizationResult(authorized=False, message=f"Failed to verify admin credentials: {e}")

        if response.status_code == 401:
            return AuthorizationResult(authorized=False, message="Session expired. Please log in again.")

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        data = body.get("data")
        if not isinstance(data, dict):
            data = {}
        if response.is_success and body.get("success") and data.get("isValid"):
            return AuthorizationResult(authorized=True, admin_username=data.get("adminUsername"))

        message = body.get("msg") or data.get("message") or "Admin verification failed"
        return AuthorizationResult(authorized=False, message=message)
