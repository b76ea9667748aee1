from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

import httpx
import jwt
from fastapi import Header, HTTPException
from jwt import PyJWKClient

from .config import CONFIG

logger = logging.getLogger(__name__)

MEMBERSHIP_FIELDS = "family_id,user_id,role,custom_role_name,is_primary,can_edit,can_invite"


@lru_cache
def _supabase_config() -> tuple[str, str]:
    url = os.getenv("SUPABASE_URL") or os.getenv("EXPO_PUBLIC_SUPABASE_URL")
    anon_key = os.getenv("SUPABASE_ANON_KEY") or os.getenv("EXPO_PUBLIC_SUPABASE_ANON_KEY")
    if not url or not anon_key:
        raise RuntimeError("Missing SUPABASE_URL/SUPABASE_ANON_KEY for API access.")
    return url.rstrip("/"), anon_key


@lru_cache
def _jwks_url() -> str:
    base_url, _ = _supabase_config()
    return os.getenv("SUPABASE_JWKS_URL") or f"{base_url}/auth/v1/keys"


@lru_cache
def _jwks_client() -> PyJWKClient:
    return PyJWKClient(_jwks_url())


def _parse_bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing authorization token.")
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid authorization token.")
    return parts[1]


def _parse_uuid(value: Optional[str], label: str) -> str:
    if not value:
        raise HTTPException(status_code=400, detail=f"Missing {label}.")
    try:
        return str(UUID(value))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {label}.") from exc


def resolve_optional_uuid(value: Optional[str], label: str) -> Optional[str]:
    if not value:
        return None
    return _parse_uuid(value, label)


def resolve_baby_id(value: Optional[str], *, required: bool = False) -> Optional[str]:
    if required:
        return _parse_uuid(value, "baby_id")
    return resolve_optional_uuid(value, "baby_id")


async def _describe_response(resp: httpx.Response) -> str:
    try:
        return resp.text or "<empty response>"
    except (httpx.ResponseNotRead, UnicodeDecodeError):
        return "<unable to read response>"


async def _raise_supabase_error(
    resp: httpx.Response,
    action: str,
    *,
    object_label: Optional[str] = None,
) -> None:
    detail = await _describe_response(resp)
    label = f" ({object_label})" if object_label else ""
    status = resp.status_code if resp.status_code >= 400 else 500
    logger.warning(
        "supabase request failed",
        extra={"action": action, "object": object_label, "status": resp.status_code},
    )
    raise HTTPException(
        status_code=status,
        detail=f"Supabase {action} failed{label}: status={resp.status_code}, body={detail}",
    )


async def _verify_access_token(token: str) -> Dict[str, Any]:
    audience = os.getenv("SUPABASE_JWT_AUD", "authenticated")
    options = {"verify_aud": bool(audience)}
    try:
        signing_key = _jwks_client().get_signing_key_from_jwt(token)
        return jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256", "ES256"],
            audience=audience if audience else None,
            options=options,
        )
    except jwt.PyJWTError as exc:
        logger.debug("JWKS verification unavailable, falling back", extra={"reason": str(exc)})

    secret = os.getenv("SUPABASE_JWT_SECRET")
    if secret:
        try:
            return jwt.decode(
                token,
                secret,
                algorithms=["HS256"],
                audience=audience if audience else None,
                options=options,
            )
        except jwt.PyJWTError as exc:
            raise HTTPException(status_code=401, detail="Invalid or expired token.") from exc

    base_url, anon_key = _supabase_config()
    async with httpx.AsyncClient(timeout=CONFIG.http_timeout_seconds) as client:
        resp = await client.get(
            f"{base_url}/auth/v1/user",
            headers={
                "Authorization": f"Bearer {token}",
                "apikey": anon_key,
            },
        )
    if resp.status_code >= 400:
        raise HTTPException(status_code=401, detail="Invalid or expired token.")
    data = resp.json() if resp.content else {}
    user_id = data.get("id")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid or expired token.")
    return {"sub": user_id, "email": data.get("email")}


@dataclass
class SupabaseClient:
    base_url: str
    anon_key: str
    access_token: str

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    async def request(
        self,
        method: str,
        table: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        url = f"{self.base_url}/rest/v1/{table}"
        async with httpx.AsyncClient(timeout=CONFIG.http_timeout_seconds) as client:
            return await client.request(
                method,
                url,
                params=params,
                json=json,
                headers=self._headers(headers),
            )

    async def select(self, table: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        resp = await self.request("GET", table, params=params)
        if resp.status_code >= 400:
            await _raise_supabase_error(resp, "select", object_label=f"table={table}")
        return resp.json()

    async def insert(
        self,
        table: str,
        payload: Dict[str, Any],
        *,
        params: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        resp = await self.request(
            "POST",
            table,
            params=params,
            json=payload,
            headers={"Prefer": "return=representation"},
        )
        if resp.status_code >= 400:
            await _raise_supabase_error(resp, "insert", object_label=f"table={table}")
        return resp.json() if resp.content else []

    async def update(
        self,
        table: str,
        payload: Dict[str, Any],
        params: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        resp = await self.request(
            "PATCH",
            table,
            params=params,
            json=payload,
            headers={"Prefer": "return=representation"},
        )
        if resp.status_code >= 400:
            await _raise_supabase_error(resp, "update", object_label=f"table={table}")
        return resp.json() if resp.content else []


@dataclass
class AuthContext:
    user_id: str
    user_email: Optional[str]
    family_id: str
    access_token: str
    supabase: SupabaseClient
    memberships: List[Dict[str, Any]]


def resolve_family_id(
    memberships: Iterable[Dict[str, Any]],
    requested: Optional[str] = None,
    *,
    created_family_id: Optional[str] = None,
) -> Optional[str]:
    """Pick the family a request acts on.

    An explicit request must match a membership. Otherwise the primary
    membership wins, then a sole membership, then a family the user created
    without joining it. Returns None when the user belongs to no family.
    """

    rows = list(memberships)
    family_ids = {row.get("family_id") for row in rows if row.get("family_id")}
    if requested:
        resolved = _parse_uuid(requested, "family_id")
        if resolved not in family_ids:
            raise HTTPException(status_code=403, detail="Family access denied.")
        return resolved

    primary = next((row.get("family_id") for row in rows if row.get("is_primary")), None)
    if primary:
        return primary
    if len(family_ids) == 1:
        return next(iter(family_ids))
    if family_ids:
        raise HTTPException(
            status_code=409,
            detail={"error": "family_required", "count": len(family_ids)},
        )
    return created_family_id


async def get_auth_context(
    authorization: Optional[str] = Header(None),
    family_id: Optional[str] = Header(None, alias="X-Cradle-Family-Id"),
) -> AuthContext:
    token = _parse_bearer_token(authorization)
    payload = await _verify_access_token(token)
    user_id = _parse_uuid(payload.get("sub"), "user_id")
    user_email = payload.get("email") if isinstance(payload, dict) else None

    base_url, anon_key = _supabase_config()
    supabase = SupabaseClient(base_url=base_url, anon_key=anon_key, access_token=token)

    memberships = await supabase.select(
        "family_members",
        params={"select": MEMBERSHIP_FIELDS, "user_id": f"eq.{user_id}"},
    )

    created_family_id = None
    if not memberships and not family_id:
        created = await supabase.select(
            "family_groups",
            params={"select": "id", "created_by": f"eq.{user_id}", "limit": "1"},
        )
        created_family_id = created[0]["id"] if created else None

    resolved_family_id = resolve_family_id(
        memberships, family_id, created_family_id=created_family_id
    )
    if not resolved_family_id:
        raise HTTPException(
            status_code=409,
            detail="Create or join a family before logging records.",
        )

    return AuthContext(
        user_id=user_id,
        user_email=user_email,
        family_id=resolved_family_id,
        access_token=token,
        supabase=supabase,
        memberships=memberships,
    )
