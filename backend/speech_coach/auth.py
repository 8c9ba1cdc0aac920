from __future__ import annotations
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session, sessionmaker

from .db import utcnow
from .models import AuthSession
from .settings import Settings

logger = logging.getLogger(__name__)

logging.getLogger('passlib').setLevel(logging.ERROR)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


@dataclass(frozen=True)
class Principal:
	id: str
	is_anonymous: bool = False


def hash_password(password: str) -> str:
	# bcrypt only looks at the first 72 bytes
	password_bytes = password.encode('utf-8')[:72]
	return pwd_context.hash(password_bytes.decode('utf-8', errors='ignore'))


def verify_password(plain_password: str, hashed_password: str) -> bool:
	password_bytes = plain_password.encode('utf-8')[:72]
	return pwd_context.verify(password_bytes.decode('utf-8', errors='ignore'), hashed_password)


def _resolve_expiry(settings: Settings, expires_delta: Optional[timedelta]) -> datetime:
	"""Return a safe JWT expiry timestamp.

	Uses the configured session lifetime when no explicit delta is given and
	caps the result within `datetime` bounds.
	"""
	delta = expires_delta
	if delta is None:
		minutes = settings.access_token_expire_minutes
		delta = timedelta(minutes=minutes) if minutes > 0 else timedelta(days=30)
	now = datetime.now(timezone.utc)
	try:
		return now + delta
	except OverflowError:
		return datetime.max.replace(tzinfo=timezone.utc)


def create_access_token(settings: Settings, data: dict, expires_delta: Optional[timedelta] = None) -> str:
	to_encode = data.copy()
	to_encode.update({"exp": _resolve_expiry(settings, expires_delta)})
	return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def open_session(db: Session, settings: Settings, principal: Principal) -> str:
	"""Persist a new server-side session and return a bearer token bound to it."""
	session_id = uuid.uuid4().hex
	db.add(AuthSession(session_id=session_id, principal_id=principal.id, is_anonymous=principal.is_anonymous))
	db.commit()
	return create_access_token(
		settings,
		{"sub": principal.id, "jti": session_id, "is_anonymous": principal.is_anonymous},
	)


class TokenVerifier:
	"""Validates bearer tokens issued by /auth into a Principal.

	A token is accepted only if its signature and expiry check out and the
	session it names still exists, is not revoked and belongs to the subject.
	Every failure, including storage errors, yields None.
	"""

	def __init__(self, settings: Settings, session_factory: sessionmaker) -> None:
		self._secret = settings.jwt_secret_key
		self._algorithm = settings.jwt_algorithm
		self._session_factory = session_factory

	def verify(self, token: str) -> Optional[Principal]:
		try:
			payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
		except JWTError as e:
			logger.info("Rejected bearer token: %s", e)
			return None
		subject = payload.get("sub")
		jti = payload.get("jti")
		if not isinstance(subject, str) or not subject or not isinstance(jti, str) or not jti:
			return None

		db = self._session_factory()
		try:
			row = db.get(AuthSession, jti)
			if row is None or row.revoked or row.principal_id != subject:
				return None
			row.last_activity_at = utcnow()
			db.commit()
			return Principal(id=subject, is_anonymous=bool(row.is_anonymous))
		except Exception:
			db.rollback()
			logger.exception("Session lookup failed; treating token as invalid")
			return None
		finally:
			db.close()

	def revoke(self, token: str) -> bool:
		try:
			payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
		except JWTError:
			return False
		jti = payload.get("jti")
		if not isinstance(jti, str):
			return False
		db = self._session_factory()
		try:
			row = db.get(AuthSession, jti)
			if row is None or row.principal_id != payload.get("sub"):
				return False
			row.revoked = True
			db.commit()
			return True
		finally:
			db.close()
