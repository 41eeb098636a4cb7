"""Thin client for the Supabase Auth (GoTrue) REST API.

Patients sign up through Supabase so that it can send the verification email;
the clinic database stays the source of truth for passwords and roles. Only the
handful of endpoints the API needs are wrapped here.
"""

import logging
from dataclasses import dataclass

import httpx

from dentalcare.core import config

logger = logging.getLogger(__name__)

USERS_PER_PAGE = 200


class SupabaseAuthError(Exception):
    """Raised when Supabase is not configured or answers with an error."""


@dataclass
class EmailStatus:
    supabase_user_exists: bool
    email_confirmed: bool


def _require(value: str, name: str) -> str:
    if not value:
        raise SupabaseAuthError(f"Missing environment variable: {name}")
    return value


def _public_headers() -> dict:
    anon_key = _require(config.SUPABASE_ANON_KEY, "SUPABASE_ANON_KEY")
    return {"apikey": anon_key, "Content-Type": "application/json"}


def _admin_headers() -> dict:
    service_key = _require(config.SUPABASE_SERVICE_KEY, "SUPABASE_SERVICE_KEY")
    return {
        "apikey": service_key,
        "Authorization": f"Bearer {service_key}",
        "Content-Type": "application/json",
    }


def _client() -> httpx.Client:
    base_url = _require(config.SUPABASE_URL, "SUPABASE_URL")
    return httpx.Client(base_url=f"{base_url}/auth/v1", timeout=config.SUPABASE_TIMEOUT_SECONDS)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"Supabase returned HTTP {response.status_code}"
    return body.get("msg") or body.get("message") or body.get("error_description") or str(body)


def get_email_status_by_email(email: str) -> EmailStatus:
    """Page through the admin user listing looking for ``email``."""
    target = email.strip().lower()
    page = 1

    with _client() as client:
        while True:
            try:
                response = client.get(
                    "/admin/users",
                    params={"page": page, "per_page": USERS_PER_PAGE},
                    headers=_admin_headers(),
                )
            except httpx.HTTPError as exc:
                raise SupabaseAuthError(str(exc)) from exc
            if response.is_error:
                raise SupabaseAuthError(_error_message(response))

            users = response.json().get("users") or []
            for user in users:
                if (user.get("email") or "").lower() == target:
                    confirmed_at = user.get("email_confirmed_at") or user.get("confirmed_at")
                    return EmailStatus(supabase_user_exists=True, email_confirmed=bool(confirmed_at))

            if len(users) < USERS_PER_PAGE:
                break
            page += 1

    return EmailStatus(supabase_user_exists=False, email_confirmed=False)


def resend_signup_verification(email: str) -> None:
    params = {}
    if config.APP_BASE_URL:
        params["redirect_to"] = f"{config.APP_BASE_URL}/login?verified=true"

    with _client() as client:
        try:
            response = client.post(
                "/resend",
                params=params,
                json={"type": "signup", "email": email},
                headers=_public_headers(),
            )
        except httpx.HTTPError as exc:
            raise SupabaseAuthError(str(exc)) from exc
    if response.is_error:
        raise SupabaseAuthError(_error_message(response))


def get_user_for_access_token(access_token: str) -> dict:
    """Resolve a recovery access token to the Supabase user it was issued for."""
    headers = _public_headers()
    headers["Authorization"] = f"Bearer {access_token}"

    with _client() as client:
        try:
            response = client.get("/user", headers=headers)
        except httpx.HTTPError as exc:
            raise SupabaseAuthError(str(exc)) from exc
    if response.is_error:
        raise SupabaseAuthError(_error_message(response))
    return response.json()


def update_user_password(user_id: str, password: str) -> None:
    with _client() as client:
        try:
            response = client.put(
                f"/admin/users/{user_id}",
                json={"password": password},
                headers=_admin_headers(),
            )
        except httpx.HTTPError as exc:
            raise SupabaseAuthError(str(exc)) from exc
    if response.is_error:
        raise SupabaseAuthError(_error_message(response))
