"""
Bearer token verification against the external identity provider.

Verification is an ordered list of strategies. Each strategy either returns a
VerifiedIdentity, raises VerificationNotApplicable when the token is not its
kind, or raises VerificationFailed with a reason. IdentityResolver walks the
list, then maps the identity onto a local User row.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

import httpx
from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTClaimsError, JWTError
from sqlalchemy.orm import Session

from marketplace.core import config
from marketplace.core.errors import UnauthorizedError
from marketplace.core.token_store import RevocationStore, get_revocation_store
from marketplace.db.models.enums import UserRole, UserStatus
from marketplace.db.models.user import User
from marketplace.services.identity_provider import IdentityProviderClient, get_identity_provider_client

logger = logging.getLogger(__name__)


@dataclass
class VerifiedIdentity:
    external_id: str
    email: str = ""
    name: str = ""
    source: str = "signed"


@dataclass
class CurrentUser:
    """The authenticated caller as seen by routes and services."""

    id: int
    role: UserRole
    email: str = ""
    name: str = ""
    external_id: Optional[str] = None
    token: Optional[str] = field(default=None, repr=False)


class VerificationNotApplicable(Exception):
    """The token is not of the kind this verifier handles."""


class VerificationFailed(Exception):
    """The token is of this verifier's kind but is not acceptable."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class JwksCache:
    """Signing keys fetched from the provider's JWKS endpoint, kept for a TTL."""

    def __init__(self, url: str = None, ttl_seconds: int = None,
                 fetch: Optional[Callable] = None, clock: Callable[[], float] = time.monotonic):
        self.url = url or config.IDENTITY_JWKS_URL
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else config.JWKS_CACHE_TTL_SECONDS
        self._fetch = fetch or self._fetch_remote
        self._clock = clock
        self._keys: List[Dict] = []
        self._fetched_at: Optional[float] = None

    async def _fetch_remote(self) -> List[Dict]:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(self.url)
            response.raise_for_status()
            return response.json().get("keys", [])

    async def _load(self, force: bool = False) -> List[Dict]:
        fresh = self._fetched_at is not None and self._clock() - self._fetched_at < self.ttl_seconds
        if force or not fresh:
            self._keys = await self._fetch()
            self._fetched_at = self._clock()
            logger.info(f"JWKS refreshed: keys={len(self._keys)}")
        return self._keys

    async def get_key(self, kid: str) -> Optional[Dict]:
        """Find a key by id, refetching once if the cached set does not have it."""
        keys = await self._load()
        key = next((k for k in keys if k.get("kid") == kid), None)
        if key is None:
            keys = await self._load(force=True)
            key = next((k for k in keys if k.get("kid") == kid), None)
        return key


class SignedTokenVerifier:
    """Verifies RS256 session JWTs issued by the identity provider."""

    def __init__(self, jwks: JwksCache, issuer: str = None, audience: str = None,
                 legacy_prefixes: Sequence[str] = None):
        self.jwks = jwks
        self.issuer = issuer if issuer is not None else config.IDENTITY_ISSUER
        self.audience = audience if audience is not None else config.IDENTITY_AUDIENCE
        self.legacy_prefixes = tuple(legacy_prefixes if legacy_prefixes is not None else config.LEGACY_TOKEN_PREFIXES)

    async def verify(self, token: str) -> VerifiedIdentity:
        if token.count(".") != 2 or token.startswith(self.legacy_prefixes):
            raise VerificationNotApplicable()

        try:
            header = jwt.get_unverified_header(token)
        except JWTError:
            raise VerificationFailed("malformed")

        kid = header.get("kid")
        if not kid:
            raise VerificationFailed("malformed")

        try:
            key = await self.jwks.get_key(kid)
        except httpx.HTTPError as e:
            logger.warning(f"JWKS fetch failed: error={e}")
            raise VerificationFailed("signing keys unavailable")
        if key is None:
            raise VerificationFailed("unknown signing key")

        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=["RS256"],
                issuer=self.issuer or None,
                audience=self.audience or None,
                options={"verify_aud": bool(self.audience)},
            )
        except ExpiredSignatureError:
            raise VerificationFailed("expired")
        except JWTClaimsError as e:
            raise VerificationFailed(f"invalid claims: {e}")
        except JWTError:
            raise VerificationFailed("invalid signature")

        subject = claims.get("sub")
        if not subject:
            raise VerificationFailed("malformed")

        name = claims.get("name") or f"{claims.get('first_name') or ''} {claims.get('last_name') or ''}".strip()
        return VerifiedIdentity(external_id=subject, email=claims.get("email") or "", name=name, source="signed")


class LegacySessionVerifier:
    """Resolves opaque session ids through the provider's session API."""

    def __init__(self, client: IdentityProviderClient):
        self.client = client

    async def verify(self, token: str) -> VerifiedIdentity:
        if not self.client.configured:
            raise VerificationNotApplicable()

        try:
            session = await self.client.get_session(token)
        except httpx.HTTPError as e:
            logger.error(f"Session lookup failed: {e}")
            raise VerificationFailed("identity provider unavailable")

        # Unknown to the provider: not a legacy session at all
        if session is None:
            raise VerificationNotApplicable()

        if session.get("status") != "active":
            raise VerificationFailed(f"session {session.get('status') or 'invalid'}")

        user_id = session.get("user_id")
        if not user_id:
            raise VerificationFailed("malformed session")

        return VerifiedIdentity(external_id=user_id, source="legacy")


class IdentityResolver:
    def __init__(self, verifiers: Sequence, revocation_store: RevocationStore):
        self.verifiers = list(verifiers)
        self.revocation_store = revocation_store

    async def verify(self, token: str) -> VerifiedIdentity:
        """
        Run the verifiers in order.

        Raises:
            UnauthorizedError: Missing or revoked token, or every verifier failed
        """
        if not token:
            raise UnauthorizedError("Authentication token missing")

        if self.revocation_store.is_revoked(token):
            raise UnauthorizedError("Token revoked")

        failure: Optional[VerificationFailed] = None
        for verifier in self.verifiers:
            try:
                return await verifier.verify(token)
            except VerificationNotApplicable:
                continue
            except VerificationFailed as e:
                logger.debug(f"{type(verifier).__name__} rejected token: {e.reason}")
                failure = e

        reason = failure.reason if failure else "invalid token"
        logger.warning(f"Authentication failed: reason={reason}")
        raise UnauthorizedError(f"Authentication failed: {reason}")

    async def resolve(self, db: Session, token: str) -> CurrentUser:
        identity = await self.verify(token)
        user = self._local_user(db, identity)

        if user.status == UserStatus.INACTIVE:
            raise UnauthorizedError("User inactive")

        return CurrentUser(
            id=user.id,
            role=user.role,
            email=user.email,
            name=user.name,
            external_id=user.external_id,
            token=token,
        )

    def _local_user(self, db: Session, identity: VerifiedIdentity) -> User:
        user = db.query(User).filter(User.external_id == identity.external_id).first()
        if user:
            return user

        # Legacy sessions carry no profile, so the user must already be known
        if identity.source == "legacy" or not identity.email:
            raise UnauthorizedError("User not found")

        user = db.query(User).filter(User.email == identity.email).first()
        if user:
            user.external_id = identity.external_id
            db.commit()
            logger.info(f"Linked existing user to identity provider: user_id={user.id}")
            return user

        user = User(
            external_id=identity.external_id,
            email=identity.email,
            name=identity.name or identity.email.split("@")[0],
            role=UserRole.USER,
            status=UserStatus.PENDING,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info(f"Created local user on first sign-in: user_id={user.id}")
        return user


_resolver: Optional[IdentityResolver] = None


def get_identity_resolver() -> IdentityResolver:
    global _resolver
    if _resolver is None:
        _resolver = IdentityResolver(
            verifiers=[
                SignedTokenVerifier(JwksCache()),
                LegacySessionVerifier(get_identity_provider_client()),
            ],
            revocation_store=get_revocation_store(),
        )
    return _resolver
