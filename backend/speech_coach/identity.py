"""
Caller identity resolution shared by every quota-gated endpoint.

Every caller lands in exactly one bucket:

- ``Authenticated``: a verified account, keyed by user id
- ``AnonymousSession``: a verified guest session, keyed by its stable principal id
- ``AnonymousIp``: no usable credentials, keyed by network origin

so omitting or forging a token never escapes the quota, it only moves the
caller into the lower anonymous tier.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Protocol, Union

from .auth import Principal
from .errors import AuthenticationRequired

logger = logging.getLogger(__name__)

AUTHENTICATED = "authenticated"
ANONYMOUS_SESSION = "anonymous-session"
ANONYMOUS = "anonymous"

UNKNOWN_ORIGIN = "unknown"


@dataclass(frozen=True)
class Authenticated:
	user_id: str
	identifier_class = AUTHENTICATED

	@property
	def identifier_value(self) -> str:
		return self.user_id


@dataclass(frozen=True)
class AnonymousSession:
	session_id: str
	identifier_class = ANONYMOUS_SESSION

	@property
	def identifier_value(self) -> str:
		return self.session_id


@dataclass(frozen=True)
class AnonymousIp:
	address: str
	identifier_class = ANONYMOUS

	@property
	def identifier_value(self) -> str:
		return self.address


CallerIdentity = Union[Authenticated, AnonymousSession, AnonymousIp]


class TokenVerifierLike(Protocol):
	def verify(self, token: str) -> Optional[Principal]: ...


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
	if not authorization:
		return None
	scheme, _, token = authorization.strip().partition(" ")
	if scheme.lower() != "bearer":
		return None
	token = token.strip()
	return token or None


def network_origin(headers: Mapping[str, str]) -> str:
	forwarded = headers.get("x-forwarded-for")
	if forwarded:
		first = forwarded.split(",")[0].strip()
		if first:
			return first
	real_ip = (headers.get("x-real-ip") or "").strip()
	return real_ip or UNKNOWN_ORIGIN


class IdentityResolver:
	def __init__(self, verifier: TokenVerifierLike, *, require_auth: bool = False) -> None:
		self._verifier = verifier
		self._require_auth = require_auth

	def resolve(self, headers: Mapping[str, str]) -> CallerIdentity:
		"""Resolve request headers into a caller identity.

		Raises AuthenticationRequired only when the deployment requires
		authentication; otherwise a missing or bad token degrades to AnonymousIp.
		`headers` must do case-insensitive lookups for lower-case keys
		(Starlette's Headers does).
		"""
		token = extract_bearer_token(headers.get("authorization"))
		principal: Optional[Principal] = None
		if token:
			try:
				principal = self._verifier.verify(token)
			except Exception:
				logger.exception("Token verification raised; falling back to anonymous identity")
				principal = None

		if principal is not None:
			if principal.is_anonymous:
				return AnonymousSession(session_id=principal.id)
			return Authenticated(user_id=principal.id)

		if self._require_auth:
			if token:
				raise AuthenticationRequired("Invalid or expired authentication token")
			raise AuthenticationRequired("Authentication required")

		if token:
			logger.info("Invalid bearer token; treating caller as guest")
		return AnonymousIp(address=network_origin(headers))
