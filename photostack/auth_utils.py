# auth_utils.py
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from photostack.config import ACCESS_TOKEN_EXPIRE_MINUTES, ALGORITHM, USER_ROLES, Settings
from photostack.database import Store, get_store
from photostack.errors import Forbidden, Unauthorized

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

JWKS_CACHE_SECONDS = 24 * 60 * 60
# at most 10 key set refreshes a minute for unknown key ids
JWKS_REFETCH_SECONDS = 6

_email_adapter = TypeAdapter(EmailStr)


def _valid_email(value: Any) -> Optional[str]:
    if not value:
        return None
    try:
        return _email_adapter.validate_python(value)
    except PydanticValidationError:
        logger.warning("Ignoring invalid email claim: %r", value)
        return None


@dataclass
class CurrentUser:
    oid: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    role: Optional[str] = None

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "CurrentUser":
        oid = claims.get("oid") or claims.get("sub")
        if not oid:
            raise Unauthorized("Invalid token")
        emails = claims.get("emails") or [None]
        role = claims.get("extension_Role") or claims.get("role")
        return cls(
            oid=str(oid),
            email=_valid_email(claims.get("email") or emails[0]),
            display_name=claims.get("name") or claims.get("given_name") or claims.get("displayName"),
            role=role if role in USER_ROLES else None,
        )


def create_access_token(data: dict, secret_key: str, expires_delta: Optional[timedelta] = None) -> str:
    """Create a development HS256 token accepted when no JWKS endpoint is configured"""
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"iat": now, "exp": expire})
    return jwt.encode(to_encode, secret_key, algorithm=ALGORITHM)


class TokenVerifier:
    """Checks bearer tokens against Azure AD B2C signing keys, or the local secret in development."""

    def __init__(self, secret_key: str, jwks_uri: Optional[str] = None,
                 audience: Optional[str] = None, issuer: Optional[str] = None,
                 allow_dev_tokens: bool = True):
        self.secret_key = secret_key
        self.jwks_uri = jwks_uri
        self.audience = audience
        self.issuer = issuer
        self.allow_dev_tokens = allow_dev_tokens
        self._keys: List[Dict[str, Any]] = []
        self._keys_fetched_at = 0.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenVerifier":
        if settings.is_production and not settings.azure_ad_jwks_uri:
            logger.error("AZURE_AD_JWKS_URI is not set; every bearer token will be rejected")
        return cls(
            secret_key=settings.secret_key,
            jwks_uri=settings.azure_ad_jwks_uri,
            audience=settings.token_audience,
            issuer=settings.azure_ad_issuer,
            allow_dev_tokens=not settings.is_production,
        )

    async def _fetch_keys(self) -> None:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(self.jwks_uri)
            response.raise_for_status()
        self._keys = response.json().get("keys", [])
        self._keys_fetched_at = time.monotonic()

    def _find_key(self, kid: Optional[str]) -> Optional[Dict[str, Any]]:
        return next((k for k in self._keys if k.get("kid") == kid), None)

    async def get_signing_key(self, kid: Optional[str]) -> Dict[str, Any]:
        if not self._keys_fetched_at or time.monotonic() - self._keys_fetched_at > JWKS_CACHE_SECONDS:
            await self._fetch_keys()
        key = self._find_key(kid)
        if key is None and time.monotonic() - self._keys_fetched_at >= JWKS_REFETCH_SECONDS:
            # signing keys rotate; refresh before giving up
            await self._fetch_keys()
            key = self._find_key(kid)
        if key is None:
            raise JWTError(f"No signing key found for kid {kid!r}")
        return key

    async def verify(self, token: str) -> Dict[str, Any]:
        options = {"verify_aud": bool(self.audience)}
        if not self.jwks_uri and not self.allow_dev_tokens:
            raise JWTError("No signing keys configured")
        if self.jwks_uri:
            header = jwt.get_unverified_header(token)
            key = await self.get_signing_key(header.get("kid"))
            return jwt.decode(token, key, algorithms=["RS256"], audience=self.audience,
                              issuer=self.issuer, options=options)
        return jwt.decode(token, self.secret_key, algorithms=[ALGORITHM], options=options,
                          audience=self.audience)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> CurrentUser:
    """Get current user from the bearer token"""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise Unauthorized("No token provided")

    verifier: TokenVerifier = request.app.state.token_verifier
    try:
        claims = await verifier.verify(credentials.credentials)
    except JWTError as e:
        logger.warning("Token verification failed: %s", e)
        raise Unauthorized("Invalid or expired token")
    except httpx.HTTPError as e:
        logger.error("Could not fetch signing keys: %s", e)
        raise Unauthorized("Invalid or expired token")

    return CurrentUser.from_claims(claims)


async def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[CurrentUser]:
    """Like get_current_user, but anonymous or invalid tokens yield None"""
    if credentials is None:
        return None
    try:
        return await get_current_user(request, credentials)
    except Unauthorized:
        return None


async def load_user(
    current_user: CurrentUser = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> Optional[Dict[str, Any]]:
    """Load (or auto-provision) the persisted user and stamp the login time"""
    user = await store.get_user_by_oid(current_user.oid)

    if user is None and current_user.email:
        user = await store.get_user_by_email(current_user.email)
        if user is not None:
            # same account, new identity provider object id
            user = await store.update_user(user["id"], oid=current_user.oid)
        else:
            user = await store.create_user(
                oid=current_user.oid,
                email=current_user.email,
                display_name=current_user.display_name or "User",
                role=current_user.role or "consumer",
            )
            logger.info("Auto-created user: %s", user["email"])

    if user is not None:
        user = await store.update_user(user["id"], last_login_at=datetime.now(timezone.utc))
    return user


# Role-based access control dependencies
def role_required(allowed_roles: list, any_registered_user: bool = False):
    """Factory for dependencies that admit a token role, falling back to the stored role"""
    async def role_checker(
        current_user: CurrentUser = Depends(get_current_user),
        db_user: Optional[Dict[str, Any]] = Depends(load_user),
    ) -> CurrentUser:
        if current_user.role in allowed_roles:
            return current_user
        if db_user is not None and (any_registered_user or db_user["role"] in allowed_roles):
            return current_user
        raise Forbidden(f"{allowed_roles[0].capitalize()} access required")
    return role_checker


require_creator = role_required(["creator"])
require_consumer = role_required(["consumer", "creator"], any_registered_user=True)


def require_owner(resource_owner_id: str, current_user: CurrentUser, message: str) -> None:
    """Raise Forbidden unless the caller owns the resource"""
    if current_user.oid != resource_owner_id:
        raise Forbidden(message)
