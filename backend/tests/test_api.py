"""Comprehensive tests for the claim API."""

import hashlib
import hmac
import re
from datetime import timedelta

from charmclaim.models import AbuseEvent, ClaimChallenge, Ownership, PhysicalUnit
from charmclaim.services.claim_store import utcnow
from charmclaim.services.crypto_utils import sign_challenge_with_code

HEX64 = re.compile(r"^[0-9a-f]{64}$")


def start_challenge(client, code, headers=None):
    response = client.post("/api/v1/claim/start", json={"code": code}, headers=headers or {})
    assert response.status_code == 200, response.text
    return response.json()


def complete(client, code, challenge_id, signature, headers):
    return client.post(
        "/api/v1/claim/complete",
        json={"code": code, "challengeId": challenge_id, "signature": signature},
        headers=headers,
    )


class TestVerify:
    """Tests for the /claim/verify endpoint."""

    def test_verify_available_code(self, client, units):
        response = client.post("/api/v1/claim/verify", json={"code": "CHARM-XPAL-001"})

        assert response.status_code == 200
        assert response.json() == {"status": "available", "characterId": "red-dash"}

    def test_verify_normalizes_code(self, client, units):
        """Case and surrounding whitespace do not matter."""
        response = client.post("/api/v1/claim/verify", json={"code": "  charm-xpal-001 "})

        assert response.status_code == 200
        assert response.json()["characterId"] == "red-dash"

    def test_verify_unknown_code(self, client, units):
        response = client.post("/api/v1/claim/verify", json={"code": "NOT-A-CODE"})

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_code"

    def test_verify_missing_code(self, client, units):
        response = client.post("/api/v1/claim/verify", json={})

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"

    def test_verify_blank_code(self, client, units):
        response = client.post("/api/v1/claim/verify", json={"code": "   "})

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_code"

    def test_validation_error_does_not_echo_code(self, client, units):
        """Validation errors report the field, never the submitted value."""
        long_code = "SECRET" * 40
        response = client.post("/api/v1/claim/verify", json={"code": long_code})

        assert response.status_code == 400
        assert long_code not in response.text


class TestStart:
    """Tests for the /claim/start endpoint."""

    def test_start_returns_sealed_challenge(self, client, units, db_session):
        data = start_challenge(client, "CHARM-XPAL-001")

        assert set(data) == {"challengeId", "nonce", "timestamp", "challengeDigest", "expiresAt"}
        assert HEX64.match(data["challengeDigest"])
        assert len(data["nonce"]) == 32
        assert data["timestamp"].isdigit()
        assert data["expiresAt"].endswith("Z")

        challenge = db_session.get(ClaimChallenge, data["challengeId"])
        assert challenge is not None
        assert challenge.consumed is False
        assert challenge.user_id is None

    def test_start_never_leaks_code_or_salt(self, client, units):
        response = client.post("/api/v1/claim/start", json={"code": "CHARM-XPAL-001"})

        assert "CHARM-XPAL-001" not in response.text
        assert units["CHARM-XPAL-001"].secure_salt not in response.text

    def test_start_challenge_ttl_is_five_minutes(self, client, units, db_session):
        data = start_challenge(client, "CHARM-XPAL-001")

        challenge = db_session.get(ClaimChallenge, data["challengeId"])
        ttl = challenge.expires_at - challenge.created_at
        assert timedelta(minutes=4, seconds=55) <= ttl <= timedelta(minutes=5, seconds=5)

    def test_start_binds_challenge_to_signed_in_user(self, client, units, db_session, auth_headers):
        data = start_challenge(client, "CHARM-XPAL-001", headers=auth_headers("user-1"))

        challenge = db_session.get(ClaimChallenge, data["challengeId"])
        assert challenge.user_id == "user-1"

    def test_start_rejects_bad_session_token(self, client, units):
        response = client.post(
            "/api/v1/claim/start",
            json={"code": "CHARM-XPAL-001"},
            headers={"Authorization": "Bearer not-a-token"},
        )

        assert response.status_code == 401
        assert response.json()["error"] == "unauthenticated"

    def test_start_unknown_code(self, client, units):
        response = client.post("/api/v1/claim/start", json={"code": "CHARM-XPAL-999"})

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_code"

    def test_start_already_claimed(self, client, units, db_session):
        unit = units["CHARM-XPAL-003"]
        unit.status = "claimed"
        db_session.commit()

        response = client.post("/api/v1/claim/start", json={"code": "CHARM-XPAL-003"})

        assert response.status_code == 400
        assert response.json()["error"] == "already_claimed"


class TestClaimFlow:
    """End-to-end claim scenarios."""

    def test_full_claim_flow(self, client, units, auth_headers, db_session):
        """verify -> start -> complete -> verify reports claimed."""
        code = "CHARM-XPAL-001"

        response = client.post("/api/v1/claim/verify", json={"code": code})
        assert response.json()["status"] == "available"

        challenge = start_challenge(client, code)
        assert HEX64.match(challenge["challengeDigest"])

        signature = sign_challenge_with_code(code, challenge["challengeDigest"])
        response = complete(client, code, challenge["challengeId"], signature, auth_headers("user-1"))

        assert response.status_code == 200, response.text
        data = response.json()
        assert data["characterId"] == "red-dash"
        assert data["claimedAt"].endswith("Z")

        response = client.post("/api/v1/claim/verify", json={"code": code})
        assert response.json() == {"status": "claimed", "characterId": "red-dash"}

        unit = db_session.get(PhysicalUnit, units[code].id)
        db_session.refresh(unit)
        assert unit.claimed_by == "user-1"
        ownerships = db_session.query(Ownership).filter(Ownership.unit_id == unit.id).all()
        assert len(ownerships) == 1
        assert ownerships[0].user_id == "user-1"

    def test_bad_signature_then_good_then_reuse(self, client, units, auth_headers, db_session, abuse_events):
        """A bad signature consumes nothing; the challenge still works once, then never again."""
        code = "CHARM-XPAL-002"
        challenge = start_challenge(client, code)

        bad = complete(client, code, challenge["challengeId"], "deadbeef", auth_headers("user-2"))
        assert bad.status_code == 400
        assert bad.json()["error"] == "invalid_signature"

        stored = db_session.get(ClaimChallenge, challenge["challengeId"])
        db_session.refresh(stored)
        assert stored.consumed is False
        unit = db_session.get(PhysicalUnit, units[code].id)
        db_session.refresh(unit)
        assert unit.status == "available"

        assert len(abuse_events) == 1
        assert abuse_events[0]["type"] == "invalid-signature"
        assert abuse_events[0]["actor_ref"] == "user-2"
        assert abuse_events[0]["metadata"]["challenge_id"] == challenge["challengeId"]

        signature = sign_challenge_with_code(code, challenge["challengeDigest"])
        ok = complete(client, code, challenge["challengeId"], signature, auth_headers("user-3"))
        assert ok.status_code == 200
        assert ok.json()["characterId"] == "blue-dash"

        reuse = complete(client, code, challenge["challengeId"], signature, auth_headers("user-4"))
        assert reuse.status_code == 400
        assert reuse.json()["error"] == "challenge_expired"

    def test_challenge_cannot_be_used_twice(self, client, units, auth_headers):
        code = "CHARM-XPAL-001"
        challenge = start_challenge(client, code)
        signature = sign_challenge_with_code(code, challenge["challengeDigest"])

        first = complete(client, code, challenge["challengeId"], signature, auth_headers("user-1"))
        second = complete(client, code, challenge["challengeId"], signature, auth_headers("user-1"))

        assert first.status_code == 200
        assert second.status_code == 400
        assert second.json()["error"] == "challenge_expired"

    def test_second_claim_with_independent_challenge_fails(self, client, units, auth_headers, db_session):
        code = "CHARM-XPAL-001"
        first_challenge = start_challenge(client, code)
        second_challenge = start_challenge(client, code)

        first = complete(
            client,
            code,
            first_challenge["challengeId"],
            sign_challenge_with_code(code, first_challenge["challengeDigest"]),
            auth_headers("user-1"),
        )
        second = complete(
            client,
            code,
            second_challenge["challengeId"],
            sign_challenge_with_code(code, second_challenge["challengeDigest"]),
            auth_headers("user-2"),
        )

        assert first.status_code == 200
        assert second.status_code == 400
        assert second.json()["error"] == "already_claimed"
        assert db_session.query(Ownership).count() == 1

    def test_signature_keyed_by_code_as_typed(self, client, units, auth_headers, abuse_events):
        """A client may sign with the code exactly as the user typed it."""
        typed = "charm-xpal-001"
        challenge = start_challenge(client, typed)
        signature = hmac.new(
            typed.encode(), challenge["challengeDigest"].encode(), hashlib.sha256
        ).hexdigest()

        response = complete(client, typed, challenge["challengeId"], signature, auth_headers("u"))

        assert response.status_code == 200, response.text
        assert response.json()["characterId"] == "red-dash"
        assert abuse_events == []

    def test_signature_accepts_case_variants_of_code(self, client, units, auth_headers):
        challenge = start_challenge(client, "charm-xpal-001")
        signature = sign_challenge_with_code("CHARM-XPAL-001", challenge["challengeDigest"])

        response = complete(
            client, " charm-xpal-001", challenge["challengeId"], signature.upper(), auth_headers("u")
        )

        assert response.status_code == 200


class TestCompleteRejections:
    """Every gate of /claim/complete."""

    def test_requires_authentication(self, client, units):
        code = "CHARM-XPAL-001"
        challenge = start_challenge(client, code)
        signature = sign_challenge_with_code(code, challenge["challengeDigest"])

        response = complete(client, code, challenge["challengeId"], signature, headers={})

        assert response.status_code == 401
        assert response.json()["error"] == "unauthenticated"

    def test_invalid_authorization_header_format(self, client, units):
        response = complete(
            client, "CHARM-XPAL-001", "x", "y", headers={"Authorization": "InvalidFormat"}
        )

        assert response.status_code == 401

    def test_unknown_challenge(self, client, units, auth_headers):
        response = complete(client, "CHARM-XPAL-001", "no-such-challenge", "ab" * 32, auth_headers("u"))

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_challenge"

    def test_challenge_for_another_unit_is_rejected(self, client, units, auth_headers):
        """A digest issued for unit A cannot be redeemed with unit B's code."""
        challenge_a = start_challenge(client, "CHARM-XPAL-001")
        forged = sign_challenge_with_code("CHARM-XPAL-002", challenge_a["challengeDigest"])

        response = complete(
            client, "CHARM-XPAL-002", challenge_a["challengeId"], forged, auth_headers("u")
        )

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_challenge"

    def test_expired_challenge_is_rejected(self, client, units, auth_headers, db_session):
        code = "CHARM-XPAL-001"
        challenge = start_challenge(client, code)
        stored = db_session.get(ClaimChallenge, challenge["challengeId"])
        stored.expires_at = utcnow() - timedelta(seconds=1)
        db_session.commit()

        signature = sign_challenge_with_code(code, challenge["challengeDigest"])
        response = complete(client, code, challenge["challengeId"], signature, auth_headers("u"))

        assert response.status_code == 400
        assert response.json()["error"] == "challenge_expired"
        unit = db_session.get(PhysicalUnit, units[code].id)
        db_session.refresh(unit)
        assert unit.status == "available"

    def test_challenge_bound_to_another_user(self, client, units, auth_headers):
        code = "CHARM-XPAL-001"
        challenge = start_challenge(client, code, headers=auth_headers("user-1"))
        signature = sign_challenge_with_code(code, challenge["challengeDigest"])

        response = complete(client, code, challenge["challengeId"], signature, auth_headers("user-2"))

        assert response.status_code == 403
        assert response.json()["error"] == "challenge_mismatch"

        response = complete(client, code, challenge["challengeId"], signature, auth_headers("user-1"))
        assert response.status_code == 200

    def test_tampered_digest_is_rejected(self, client, units, auth_headers, db_session):
        code = "CHARM-XPAL-001"
        challenge = start_challenge(client, code)
        tampered = "0" * 64
        stored = db_session.get(ClaimChallenge, challenge["challengeId"])
        stored.challenge_digest = tampered
        db_session.commit()

        signature = sign_challenge_with_code(code, tampered)
        response = complete(client, code, challenge["challengeId"], signature, auth_headers("u"))

        assert response.status_code == 400
        assert response.json()["error"] == "challenge_integrity"

    def test_missing_fields(self, client, units, auth_headers):
        response = client.post(
            "/api/v1/claim/complete", json={"code": "CHARM-XPAL-001"}, headers=auth_headers("u")
        )

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"

    def test_invalid_signature_is_recorded_in_database(self, client, units, auth_headers, db_session):
        """The default sink writes abuse events to the abuse_events table."""
        from charmclaim.services.abuse_logger import AbuseLogger, get_abuse_logger
        from charmclaim.services.claim_store import record_abuse_event

        def sink(event):
            record_abuse_event(db_session, event["type"], event["actor_ref"], event["metadata"])

        client.app.dependency_overrides[get_abuse_logger] = lambda: AbuseLogger(sink=sink)

        challenge = start_challenge(client, "CHARM-XPAL-001")
        response = complete(client, "CHARM-XPAL-001", challenge["challengeId"], "00", auth_headers("u9"))

        assert response.status_code == 400
        events = db_session.query(AbuseEvent).all()
        assert len(events) == 1
        assert events[0].type == "invalid-signature"
        assert events[0].actor_ref == "u9"


class TestOwnerships:
    """Tests for the /ownerships endpoint."""

    def test_lists_claimed_characters(self, client, units, auth_headers):
        for code in ("CHARM-XPAL-001", "CHARM-XPAL-002"):
            challenge = start_challenge(client, code)
            signature = sign_challenge_with_code(code, challenge["challengeDigest"])
            assert complete(client, code, challenge["challengeId"], signature, auth_headers("owner")).status_code == 200

        response = client.get("/api/v1/ownerships", headers=auth_headers("owner"))

        assert response.status_code == 200
        data = response.json()
        assert {item["characterId"] for item in data} == {"red-dash", "blue-dash"}
        assert all(item["source"] == "claim" for item in data)

        other = client.get("/api/v1/ownerships", headers=auth_headers("someone-else"))
        assert other.json() == []

    def test_requires_authentication(self, client):
        response = client.get("/api/v1/ownerships")

        assert response.status_code == 401


class TestDevSession:
    """Tests for the development session endpoint."""

    def test_disabled_by_default(self, client):
        response = client.post("/api/v1/dev/session", json={"userId": "dev"})

        assert response.status_code == 403

    def test_issues_usable_token_when_enabled(self, client, units, monkeypatch):
        from charmclaim.config import settings

        monkeypatch.setattr(settings, "dev_auth_enabled", True)
        response = client.post("/api/v1/dev/session", json={"userId": "dev-user"})

        assert response.status_code == 201
        token = response.json()["token"]
        ownerships = client.get("/api/v1/ownerships", headers={"Authorization": f"Bearer {token}"})
        assert ownerships.status_code == 200


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}
