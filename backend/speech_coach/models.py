from __future__ import annotations
from sqlalchemy import Boolean, Column, String, DateTime, Integer, Index
from .db import Base, utcnow


class AuthUser(Base):
	__tablename__ = "auth_users"
	# Primary key is username
	username = Column(String(128), primary_key=True, index=True)
	password_hash = Column(String(256), nullable=False)
	email = Column(String(256), nullable=True)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class AuthSession(Base):
	__tablename__ = "auth_sessions"
	# Session id doubles as the JWT "jti" claim
	session_id = Column(String(64), primary_key=True)
	principal_id = Column(String(128), nullable=False, index=True)
	is_anonymous = Column(Boolean, default=False, nullable=False)
	revoked = Column(Boolean, default=False, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	last_activity_at = Column(DateTime, default=utcnow, nullable=False)


class RateLimitRecord(Base):
	"""One row per accepted request. Append-only; purged only by housekeeping."""

	__tablename__ = "rate_limits"
	id = Column(Integer, primary_key=True, autoincrement=True)
	identifier = Column(String(256), nullable=False)
	identifier_type = Column(String(32), nullable=False)
	endpoint = Column(String(64), nullable=False)
	requested_at = Column(DateTime, default=utcnow, nullable=False)

	__table_args__ = (
		Index("ix_rate_limits_lookup", "identifier", "identifier_type", "endpoint", "requested_at"),
	)
