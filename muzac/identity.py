"""
Identity provider abstraction for Cognito and an in-memory test implementation.

Nothing here mints tokens or stores passwords for real: every call is a
pass-through to the user directory, reshaped into our own error taxonomy.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from muzac.errors import AuthenticationFailure, UpstreamFailure, ValidationFailure

logger = logging.getLogger(__name__)

BAD_CREDENTIAL_CODES = {"NotAuthorizedException", "UserNotFoundException"}


@dataclass
class AuthenticatedUser:
    email: str
    sub: str

    def as_dict(self) -> dict:
        return {"email": self.email, "sub": self.sub}


class IdentityProvider(Protocol):
    """Operations the API needs from the user directory."""

    def login(self, email: str, password: str) -> str:
        ...

    def register(self, email: str, password: str) -> None:
        ...

    def confirm_registration(self, email: str, code: str) -> None:
        ...

    def resend_confirmation_code(self, email: str) -> None:
        ...

    def verify_access_token(self, token: str) -> AuthenticatedUser:
        ...


def _error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


def _error_message(exc: ClientError, fallback: str) -> str:
    return exc.response.get("Error", {}).get("Message") or fallback


class CognitoIdentityProvider:
    """Cognito user pool client using the USER_PASSWORD_AUTH flow."""

    def __init__(self, client_id: str, region: Optional[str] = None, client=None):
        if not client_id:
            raise ValueError("USER_POOL_CLIENT_ID is required for CognitoIdentityProvider")
        self.client_id = client_id
        self._client = client or boto3.client("cognito-idp", region_name=region)

    def login(self, email: str, password: str) -> str:
        try:
            result = self._client.initiate_auth(
                AuthFlow="USER_PASSWORD_AUTH",
                ClientId=self.client_id,
                AuthParameters={"USERNAME": email, "PASSWORD": password},
            )
        except ClientError as exc:
            if _error_code(exc) in BAD_CREDENTIAL_CODES:
                raise AuthenticationFailure(
                    _error_message(exc, "Authentication failed"), envelope_key="message"
                ) from exc
            raise ValidationFailure(
                _error_message(exc, "Login failed"), envelope_key="message"
            ) from exc
        except BotoCoreError as exc:
            logger.exception("Cognito initiate_auth failed")
            raise UpstreamFailure("Login failed", envelope_key="message") from exc

        token = (result.get("AuthenticationResult") or {}).get("AccessToken")
        if not token:
            # A challenge (e.g. NEW_PASSWORD_REQUIRED) is not supported.
            raise AuthenticationFailure("Authentication failed", envelope_key="message")
        return token

    def register(self, email: str, password: str) -> None:
        try:
            self._client.sign_up(
                ClientId=self.client_id,
                Username=email,
                Password=password,
                UserAttributes=[{"Name": "email", "Value": email}],
            )
        except ClientError as exc:
            if _error_code(exc) != "UsernameExistsException":
                raise ValidationFailure(
                    _error_message(exc, "Registration failed"), envelope_key="message"
                ) from exc
            # Existing but possibly unverified user: send a fresh code.
            logger.info("User already exists, resending confirmation code")
            self.resend_confirmation_code(email)
        except BotoCoreError as exc:
            logger.exception("Cognito sign_up failed")
            raise UpstreamFailure("Registration failed", envelope_key="message") from exc

    def confirm_registration(self, email: str, code: str) -> None:
        try:
            self._client.confirm_sign_up(
                ClientId=self.client_id,
                Username=email,
                ConfirmationCode=code,
            )
        except ClientError as exc:
            raise ValidationFailure(
                _error_message(exc, "Verification failed"), envelope_key="message"
            ) from exc
        except BotoCoreError as exc:
            logger.exception("Cognito confirm_sign_up failed")
            raise UpstreamFailure("Verification failed", envelope_key="message") from exc

    def resend_confirmation_code(self, email: str) -> None:
        try:
            self._client.resend_confirmation_code(
                ClientId=self.client_id,
                Username=email,
            )
        except ClientError as exc:
            raise ValidationFailure(
                _error_message(exc, "Failed to resend code"), envelope_key="message"
            ) from exc
        except BotoCoreError as exc:
            logger.exception("Cognito resend_confirmation_code failed")
            raise UpstreamFailure("Failed to resend code", envelope_key="message") from exc

    def verify_access_token(self, token: str) -> AuthenticatedUser:
        try:
            result = self._client.get_user(AccessToken=token)
        except (BotoCoreError, ClientError) as exc:
            raise AuthenticationFailure(
                "Token verification failed", envelope_key="message"
            ) from exc

        username = result.get("Username", "")
        email = next(
            (
                attr.get("Value")
                for attr in result.get("UserAttributes", [])
                if attr.get("Name") == "email"
            ),
            None,
        )
        return AuthenticatedUser(email=email or username, sub=username)


@dataclass
class _DirectoryEntry:
    password: str
    sub: str
    confirmed: bool = False
    code: Optional[str] = None


@dataclass
class InMemoryIdentityProvider:
    """Simple in-memory user directory for development and tests."""

    min_password_length: int = 8
    users: dict[str, _DirectoryEntry] = field(default_factory=dict)
    tokens: dict[str, str] = field(default_factory=dict)

    def _new_code(self) -> str:
        return f"{secrets.randbelow(10**6):06d}"

    def login(self, email: str, password: str) -> str:
        entry = self.users.get(email)
        if entry is None or entry.password != password:
            raise AuthenticationFailure(
                "Incorrect username or password.", envelope_key="message"
            )
        if not entry.confirmed:
            raise ValidationFailure("User is not confirmed.", envelope_key="message")
        token = secrets.token_urlsafe(32)
        self.tokens[token] = email
        return token

    def register(self, email: str, password: str) -> None:
        if not email or not password:
            raise ValidationFailure(
                "Email and password are required", envelope_key="message"
            )
        if email in self.users:
            self.resend_confirmation_code(email)
            return
        if len(password) < self.min_password_length:
            raise ValidationFailure(
                "Password did not conform with policy: Password not long enough",
                envelope_key="message",
            )
        self.users[email] = _DirectoryEntry(
            password=password, sub=str(uuid.uuid4()), code=self._new_code()
        )

    def confirm_registration(self, email: str, code: str) -> None:
        entry = self.users.get(email)
        if entry is None or entry.code is None or entry.code != code:
            raise ValidationFailure(
                "Invalid verification code provided, please try again.",
                envelope_key="message",
            )
        entry.confirmed = True
        entry.code = None

    def resend_confirmation_code(self, email: str) -> None:
        entry = self.users.get(email)
        if entry is None:
            raise ValidationFailure(
                "Username/client id combination not found.", envelope_key="message"
            )
        entry.code = self._new_code()

    def verify_access_token(self, token: str) -> AuthenticatedUser:
        email = self.tokens.get(token)
        if email is None or email not in self.users:
            raise AuthenticationFailure(
                "Token verification failed", envelope_key="message"
            )
        return AuthenticatedUser(email=email, sub=self.users[email].sub)

    def pending_code(self, email: str) -> Optional[str]:
        entry = self.users.get(email)
        return entry.code if entry else None

    def reset(self) -> None:
        self.users.clear()
        self.tokens.clear()
