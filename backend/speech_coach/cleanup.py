from __future__ import annotations
import logging
from datetime import timedelta
from sqlalchemy import delete
from sqlalchemy.orm import Session

from .db import utcnow
from .models import AuthSession, RateLimitRecord

logger = logging.getLogger(__name__)


def purge_rate_limit_records(db: Session, retention: timedelta) -> int:
	# Only rows far outside the sliding window are removed, so quota counts are unaffected
	threshold = utcnow() - retention
	res = db.execute(delete(RateLimitRecord).where(RateLimitRecord.requested_at < threshold))
	removed = res.rowcount or 0

	# Revoked sessions can never authenticate again
	res = db.execute(delete(AuthSession).where(AuthSession.revoked.is_(True), AuthSession.last_activity_at < threshold))
	removed += res.rowcount or 0

	db.commit()
	if removed:
		logger.info("Purged %d stale rows older than %s", removed, threshold.isoformat())
	return removed
