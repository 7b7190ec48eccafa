"""Test doubles and helpers shared across the API tests."""
import hashlib
import hmac
import json
import time

from app.store.db import session_scope
from app.store.identity import AuthTokens, IdentityError, SignUpResult, TokenError
from app.store.users import create_user

WEBHOOK_SECRET = "whsec_test_secret"
CONFIRMATION_CODE = "123456"


class FakeIdentity:
    configured = True

    def __init__(self):
        self.accounts: dict[str, dict] = {}
        self.tokens: dict[str, str] = {}
        self.password_changes: list[str] = []

    def add_account(self, email: str, password: str, sub: str) -> None:
        self.accounts[email] = {"password": password, "sub": sub}

    def issue(self, sub: str) -> str:
        token = f"access-{sub}"
        self.tokens[token] = sub
        return token

    def verify_access_token(self, token: str) -> dict:
        sub = self.tokens.get(token)
        if sub is None:
            raise TokenError("Signature verification failed")
        return {"sub": sub, "token_use": "access"}

    def sign_up(self, *, email: str, password: str, name: str) -> SignUpResult:
        if email in self.accounts:
            raise IdentityError("An account with the given email already exists.", "UsernameExistsException")
        sub = f"sub-{email}"
        self.add_account(email, password, sub)
        return SignUpResult(user_sub=sub, email_verification_required=True)

    def sign_in(self, *, email: str, password: str) -> AuthTokens:
        account = self.accounts.get(email)
        if account is None or account["password"] != password:
            raise IdentityError("Incorrect username or password.", "NotAuthorizedException")
        return AuthTokens(
            access_token=self.issue(account["sub"]),
            id_token="id-token",
            refresh_token="refresh-token",
            expires_in=3600,
        )

    def confirm_sign_up(self, *, email: str, code: str) -> None:
        if code != CONFIRMATION_CODE:
            raise IdentityError("Invalid verification code provided, please try again.", "CodeMismatchException")

    def forgot_password(self, *, email: str) -> None:
        if email not in self.accounts:
            raise IdentityError("Username/client id combination not found.", "UserNotFoundException")

    def confirm_forgot_password(self, *, email: str, code: str, new_password: str) -> None:
        if code != CONFIRMATION_CODE:
            raise IdentityError("Invalid verification code provided, please try again.", "CodeMismatchException")
        self.accounts[email]["password"] = new_password

    def update_email(self, *, username: str, new_email: str) -> None:
        if new_email in self.accounts:
            raise IdentityError("An account with the given email already exists.", "AliasExistsException")
        if username not in self.accounts:
            raise IdentityError("User does not exist.", "UserNotFoundException")
        self.accounts[new_email] = self.accounts.pop(username)

    def change_password(self, *, access_token: str, current_password: str, new_password: str) -> None:
        sub = self.tokens.get(access_token)
        account = next((a for a in self.accounts.values() if a["sub"] == sub), None)
        if account is None or account["password"] != current_password:
            raise IdentityError("Incorrect username or password.", "NotAuthorizedException")
        account["password"] = new_password
        self.password_changes.append(sub)


class FakeEmailSender:
    def __init__(self):
        self.sent: list[tuple] = []

    def send_welcome(self, email, name):
        self.sent.append(("welcome", email))

    def send_email_verification(self, email, token):
        self.sent.append(("verification", email, token))

    def send_order_confirmation(self, email, order_id, template_name):
        self.sent.append(("order_confirmation", email, order_id))

    def send_account_suspended(self, email, reason):
        self.sent.append(("suspended", email, reason))

    def of_kind(self, kind: str) -> list[tuple]:
        return [m for m in self.sent if m[0] == kind]


def add_user(app, email, *, role="user", name="Test User", status="active", password="Passw0rd!"):
    """Creates a local user plus a matching identity account; returns (user_id, auth headers)."""
    sub = f"sub-{email}"
    with session_scope(app) as s:
        u = create_user(s, email=email, name=name, cognito_subject=sub, role=role)
        u.status = status
        user_id = u.id
    identity = app.extensions["identity_client"]
    identity.add_account(email, password, sub)
    return user_id, {"Authorization": f"Bearer {identity.issue(sub)}"}


def stripe_signature(payload: str, secret: str = WEBHOOK_SECRET) -> str:
    ts = int(time.time())
    sig = hmac.new(secret.encode("utf-8"), f"{ts}.{payload}".encode("utf-8"), hashlib.sha256).hexdigest()
    return f"t={ts},v1={sig}"


def post_webhook(client, event: dict, *, secret: str = WEBHOOK_SECRET):
    payload = json.dumps(event)
    return client.post(
        "/api/v1/payment/webhooks/stripe",
        data=payload,
        headers={"Stripe-Signature": stripe_signature(payload, secret), "Content-Type": "application/json"},
    )
