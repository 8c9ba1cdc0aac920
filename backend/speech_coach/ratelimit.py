"""
Sliding-window request quotas backed by the ``rate_limits`` log.

The check and the insert of the new record happen in one transaction,
before any paid downstream work starts. Concurrent requests from the same
caller can still both read the same count in the instant between the two
statements; that window is tolerated rather than serialized with a lock.

Storage failures fail closed: if the log cannot be read or written the
request is denied, since the gated resources are paid external APIs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from .db import utcnow
from .identity import AUTHENTICATED
from .models import RateLimitRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotaPolicy:
	authenticated_per_hour: int = 20
	anonymous_per_hour: int = 3

	def limit_for(self, identifier_class: str) -> int:
		# Guest sessions have a stable id but are billed like anonymous callers
		if identifier_class == AUTHENTICATED:
			return self.authenticated_per_hour
		return self.anonymous_per_hour


@dataclass(frozen=True)
class RateLimitDecision:
	allowed: bool
	error: Optional[str] = None
	limit: Optional[int] = None
	storage_failure: bool = False


def limit_exceeded_message(identifier_class: str, limit: int) -> str:
	who = "Authenticated users" if identifier_class == AUTHENTICATED else "Guest users"
	return f"Rate limit exceeded. {who} can make {limit} requests per hour."


class SqlRateLimitStore:
	def __init__(self, session_factory: sessionmaker) -> None:
		self._session_factory = session_factory

	def count_and_record(
		self,
		identifier: str,
		identifier_type: str,
		endpoint: str,
		since: datetime,
		now: datetime,
		limit: int,
	) -> int:
		"""Count records since `since`; insert one at `now` if under `limit`.

		Returns the count observed before the insert.
		"""
		db = self._session_factory()
		try:
			count = db.scalar(
				select(func.count(RateLimitRecord.id)).where(
					RateLimitRecord.identifier == identifier,
					RateLimitRecord.identifier_type == identifier_type,
					RateLimitRecord.endpoint == endpoint,
					RateLimitRecord.requested_at >= since,
				)
			) or 0
			if count < limit:
				db.add(RateLimitRecord(
					identifier=identifier,
					identifier_type=identifier_type,
					endpoint=endpoint,
					requested_at=now,
				))
				db.commit()
			return count
		except Exception:
			db.rollback()
			raise
		finally:
			db.close()


class RateLimiter:
	def __init__(
		self,
		store: SqlRateLimitStore,
		*,
		window: timedelta = timedelta(minutes=60),
		clock: Callable[[], datetime] = utcnow,
	) -> None:
		self._store = store
		self._window = window
		self._clock = clock

	def check_and_record(
		self,
		identifier_value: str,
		identifier_class: str,
		endpoint_name: str,
		limit: int,
	) -> RateLimitDecision:
		now = self._clock()
		try:
			count = self._store.count_and_record(
				identifier_value,
				identifier_class,
				endpoint_name,
				since=now - self._window,
				now=now,
				limit=limit,
			)
		except Exception:
			logger.exception("Rate limit storage failed for %s; denying request", endpoint_name)
			return RateLimitDecision(
				allowed=False,
				error="Rate limit service unavailable. Please try again later.",
				limit=limit,
				storage_failure=True,
			)
		if count >= limit:
			logger.info(
				"Rate limit hit: class=%s endpoint=%s count=%d limit=%d",
				identifier_class, endpoint_name, count, limit,
			)
			return RateLimitDecision(allowed=False, error=limit_exceeded_message(identifier_class, limit), limit=limit)
		return RateLimitDecision(allowed=True, limit=limit)
