"""
Managed identity provider adapter (AWS Cognito user pools).

Account operations go through the `cognito-idp` API via boto3. Access tokens are
verified locally with PyJWT against the pool's published JWKS.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from dataclasses import dataclass
from functools import cached_property
from typing import Any

import boto3
import jwt
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)


class IdentityError(RuntimeError):
    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code


class TokenError(IdentityError):
    pass


@dataclass(frozen=True)
class SignUpResult:
    user_sub: str
    email_verification_required: bool


@dataclass(frozen=True)
class AuthTokens:
    access_token: str
    id_token: str
    refresh_token: str
    expires_in: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "id_token": self.id_token,
            "refresh_token": self.refresh_token,
            "expires_in": self.expires_in,
        }


@dataclass(frozen=True)
class CognitoIdentityClient:
    region: str
    user_pool_id: str
    client_id: str
    client_secret: str = ""

    @property
    def configured(self) -> bool:
        return bool(self.user_pool_id and self.client_id)

    @property
    def issuer(self) -> str:
        return f"https://cognito-idp.{self.region}.amazonaws.com/{self.user_pool_id}"

    def _client(self):
        return boto3.client("cognito-idp", region_name=self.region or None)

    @cached_property
    def _jwks_client(self) -> jwt.PyJWKClient:
        return jwt.PyJWKClient(f"{self.issuer}/.well-known/jwks.json", cache_keys=True)

    def _secret_hash(self, username: str) -> str | None:
        if not self.client_secret:
            return None
        digest = hmac.new(
            self.client_secret.encode("utf-8"),
            (username + self.client_id).encode("utf-8"),
            hashlib.sha256,
        ).digest()
        return base64.b64encode(digest).decode("ascii")

    def _with_secret(self, username: str, params: dict[str, Any]) -> dict[str, Any]:
        secret_hash = self._secret_hash(username)
        if secret_hash:
            params["SecretHash"] = secret_hash
        return params

    def _call(self, operation: str, **kwargs: Any) -> dict[str, Any]:
        if not self.configured:
            raise IdentityError("Identity provider is not configured")
        try:
            return getattr(self._client(), operation)(**kwargs)
        except ClientError as e:
            err = e.response.get("Error") or {}
            code = err.get("Code")
            message = err.get("Message") or str(e)
            logger.warning("Cognito %s failed: code=%s message=%s", operation, code, message)
            raise IdentityError(message, code=code) from e
        except BotoCoreError as e:
            logger.error("Cognito %s transport error: %s", operation, e)
            raise IdentityError(str(e)) from e

    def sign_up(self, *, email: str, password: str, name: str) -> SignUpResult:
        resp = self._call(
            "sign_up",
            **self._with_secret(
                email,
                {
                    "ClientId": self.client_id,
                    "Username": email,
                    "Password": password,
                    "UserAttributes": [
                        {"Name": "email", "Value": email},
                        {"Name": "name", "Value": name},
                    ],
                },
            ),
        )
        logger.info("User signed up at identity provider: %s", email)
        return SignUpResult(
            user_sub=resp["UserSub"],
            email_verification_required=not resp.get("UserConfirmed", False),
        )

    def sign_in(self, *, email: str, password: str) -> AuthTokens:
        auth_params = {"USERNAME": email, "PASSWORD": password}
        secret_hash = self._secret_hash(email)
        if secret_hash:
            auth_params["SECRET_HASH"] = secret_hash
        resp = self._call(
            "initiate_auth",
            ClientId=self.client_id,
            AuthFlow="USER_PASSWORD_AUTH",
            AuthParameters=auth_params,
        )
        result = resp.get("AuthenticationResult")
        if not result:
            # Challenges (MFA, NEW_PASSWORD_REQUIRED) are not supported by this API.
            raise IdentityError("Authentication failed", code=resp.get("ChallengeName"))
        return AuthTokens(
            access_token=result["AccessToken"],
            id_token=result.get("IdToken", ""),
            refresh_token=result.get("RefreshToken", ""),
            expires_in=int(result.get("ExpiresIn", 0)),
        )

    def confirm_sign_up(self, *, email: str, code: str) -> None:
        self._call(
            "confirm_sign_up",
            **self._with_secret(email, {"ClientId": self.client_id, "Username": email, "ConfirmationCode": code}),
        )
        logger.info("User email confirmed: %s", email)

    def forgot_password(self, *, email: str) -> None:
        self._call("forgot_password", **self._with_secret(email, {"ClientId": self.client_id, "Username": email}))
        logger.info("Password reset initiated: %s", email)

    def confirm_forgot_password(self, *, email: str, code: str, new_password: str) -> None:
        self._call(
            "confirm_forgot_password",
            **self._with_secret(
                email,
                {
                    "ClientId": self.client_id,
                    "Username": email,
                    "ConfirmationCode": code,
                    "Password": new_password,
                },
            ),
        )
        logger.info("Password reset confirmed: %s", email)

    def change_password(self, *, access_token: str, current_password: str, new_password: str) -> None:
        self._call(
            "change_password",
            AccessToken=access_token,
            PreviousPassword=current_password,
            ProposedPassword=new_password,
        )

    def update_email(self, *, username: str, new_email: str) -> None:
        """
        Moves the provider account to an address already verified locally.
        `username` is the address the account was signed up with.
        """
        self._call(
            "admin_update_user_attributes",
            UserPoolId=self.user_pool_id,
            Username=username,
            UserAttributes=[
                {"Name": "email", "Value": new_email},
                {"Name": "email_verified", "Value": "true"},
            ],
        )
        logger.info("Identity provider email updated: %s -> %s", username, new_email)

    def verify_access_token(self, token: str) -> dict[str, Any]:
        if not self.configured:
            raise TokenError("Identity provider is not configured")
        try:
            signing_key = self._jwks_client.get_signing_key_from_jwt(token)
            claims = jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256"],
                issuer=self.issuer,
                options={"require": ["exp", "sub"], "verify_aud": False},
            )
        except jwt.PyJWTError as e:
            raise TokenError(str(e)) from e
        # Access tokens carry client_id rather than aud.
        if claims.get("token_use") != "access":
            raise TokenError("Token is not an access token")
        if claims.get("client_id") != self.client_id:
            raise TokenError("Token was issued for a different client")
        return claims


def identity_from_config(config: dict) -> CognitoIdentityClient:
    return CognitoIdentityClient(
        region=(config.get("COGNITO_REGION") or "us-east-1").strip(),
        user_pool_id=(config.get("COGNITO_USER_POOL_ID") or "").strip(),
        client_id=(config.get("COGNITO_CLIENT_ID") or "").strip(),
        client_secret=(config.get("COGNITO_CLIENT_SECRET") or "").strip(),
    )
