from datetime import timedelta

from speech_coach.auth import Principal, TokenVerifier, create_access_token, open_session
from speech_coach.models import AuthSession

from conftest import make_settings


def test_verifier_accepts_live_session(session_factory):
	settings = make_settings()
	with session_factory() as db:
		token = open_session(db, settings, Principal(id="alice"))
	assert TokenVerifier(settings, session_factory).verify(token) == Principal(id="alice", is_anonymous=False)


def test_verifier_reports_guest_sessions(session_factory):
	settings = make_settings()
	with session_factory() as db:
		token = open_session(db, settings, Principal(id="guest-1", is_anonymous=True))
	assert TokenVerifier(settings, session_factory).verify(token).is_anonymous


def test_revoked_session_is_rejected(session_factory):
	settings = make_settings()
	verifier = TokenVerifier(settings, session_factory)
	with session_factory() as db:
		token = open_session(db, settings, Principal(id="alice"))
	assert verifier.revoke(token)
	assert verifier.verify(token) is None


def test_token_signed_with_other_secret_is_rejected(session_factory):
	settings = make_settings()
	with session_factory() as db:
		token = open_session(db, make_settings(JWT_SECRET_KEY="someone-else"), Principal(id="alice"))
	assert TokenVerifier(settings, session_factory).verify(token) is None


def test_expired_token_is_rejected(session_factory):
	settings = make_settings()
	with session_factory() as db:
		db.add(AuthSession(session_id="s1", principal_id="alice"))
		db.commit()
	token = create_access_token(settings, {"sub": "alice", "jti": "s1"}, expires_delta=timedelta(minutes=-5))
	assert TokenVerifier(settings, session_factory).verify(token) is None


def test_token_for_unknown_session_is_rejected(session_factory):
	settings = make_settings()
	token = create_access_token(settings, {"sub": "alice", "jti": "never-issued"})
	assert TokenVerifier(settings, session_factory).verify(token) is None


def test_subject_must_match_session_owner(session_factory):
	settings = make_settings()
	with session_factory() as db:
		db.add(AuthSession(session_id="s2", principal_id="alice"))
		db.commit()
	token = create_access_token(settings, {"sub": "mallory", "jti": "s2"})
	assert TokenVerifier(settings, session_factory).verify(token) is None


def test_garbage_token_is_rejected(session_factory):
	assert TokenVerifier(make_settings(), session_factory).verify("not-a-jwt") is None


def test_missing_service_keys():
	assert make_settings().missing_service_keys() == []
	missing = make_settings(ASSEMBLYAI_API_KEY=None, JWT_SECRET_KEY="change-me").missing_service_keys()
	assert missing == ["ASSEMBLYAI_API_KEY", "JWT_SECRET_KEY"]
