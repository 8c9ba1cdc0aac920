import pytest

from speech_coach.auth import Principal
from speech_coach.errors import AuthenticationRequired
from speech_coach.identity import (
	ANONYMOUS,
	ANONYMOUS_SESSION,
	AUTHENTICATED,
	AnonymousIp,
	AnonymousSession,
	Authenticated,
	IdentityResolver,
	extract_bearer_token,
)


class StubVerifier:
	def __init__(self, principals=None, raises=False):
		self.principals = principals or {}
		self.raises = raises
		self.seen = []

	def verify(self, token):
		self.seen.append(token)
		if self.raises:
			raise RuntimeError("auth provider down")
		return self.principals.get(token)


VERIFIER = StubVerifier({
	"user-token": Principal(id="user-123"),
	"guest-token": Principal(id="guest-abc", is_anonymous=True),
})


def test_valid_token_resolves_to_authenticated_user():
	identity = IdentityResolver(VERIFIER).resolve({"authorization": "Bearer user-token", "x-forwarded-for": "9.9.9.9"})
	assert identity == Authenticated(user_id="user-123")
	assert identity.identifier_value == "user-123"
	assert identity.identifier_class == AUTHENTICATED


def test_anonymous_principal_keeps_stable_session_id():
	resolver = IdentityResolver(VERIFIER)
	first = resolver.resolve({"authorization": "Bearer guest-token", "x-forwarded-for": "1.1.1.1"})
	second = resolver.resolve({"authorization": "bearer guest-token", "x-forwarded-for": "2.2.2.2"})
	assert first == second == AnonymousSession(session_id="guest-abc")
	assert first.identifier_class == ANONYMOUS_SESSION


def test_missing_token_falls_back_to_forwarded_for():
	identity = IdentityResolver(VERIFIER).resolve({"x-forwarded-for": "203.0.113.7, 10.0.0.1"})
	assert identity == AnonymousIp(address="203.0.113.7")
	assert identity.identifier_class == ANONYMOUS


def test_real_ip_used_when_forwarded_for_absent():
	identity = IdentityResolver(VERIFIER).resolve({"x-real-ip": "198.51.100.4"})
	assert identity.identifier_value == "198.51.100.4"


def test_unknown_origin_sentinel():
	assert IdentityResolver(VERIFIER).resolve({}).identifier_value == "unknown"


def test_invalid_token_degrades_to_anonymous():
	identity = IdentityResolver(VERIFIER).resolve({"authorization": "Bearer forged", "x-forwarded-for": "5.5.5.5"})
	assert identity == AnonymousIp(address="5.5.5.5")


def test_verifier_failure_never_escapes():
	resolver = IdentityResolver(StubVerifier(raises=True))
	identity = resolver.resolve({"authorization": "Bearer user-token"})
	assert identity == AnonymousIp(address="unknown")


def test_same_origin_different_classes_are_distinct_buckets():
	resolver = IdentityResolver(VERIFIER)
	guest = resolver.resolve({"x-forwarded-for": "7.7.7.7"})
	user = resolver.resolve({"authorization": "Bearer user-token", "x-forwarded-for": "7.7.7.7"})
	assert (guest.identifier_value, guest.identifier_class) != (user.identifier_value, user.identifier_class)


@pytest.mark.parametrize("headers, message", [
	({}, "Authentication required"),
	({"authorization": "Bearer forged"}, "Invalid or expired authentication token"),
])
def test_require_auth_mode_rejects_unauthenticated_callers(headers, message):
	resolver = IdentityResolver(VERIFIER, require_auth=True)
	with pytest.raises(AuthenticationRequired) as exc_info:
		resolver.resolve(headers)
	assert exc_info.value.status_code == 401
	assert exc_info.value.message == message


def test_require_auth_mode_still_admits_guest_sessions():
	resolver = IdentityResolver(VERIFIER, require_auth=True)
	assert resolver.resolve({"authorization": "Bearer guest-token"}).identifier_class == ANONYMOUS_SESSION


@pytest.mark.parametrize("header, expected", [
	(None, None),
	("", None),
	("Bearer", None),
	("Bearer   ", None),
	("Basic dXNlcjpwYXNz", None),
	("Bearer abc.def", "abc.def"),
	("BEARER abc", "abc"),
])
def test_extract_bearer_token(header, expected):
	assert extract_bearer_token(header) == expected
