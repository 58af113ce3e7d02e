from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from accessgate.core.errors import GrantExpired, GrantNotFound, MissingParameter
from accessgate.workflows.grants import GrantResolver

from conftest import LEGACY_CID, MULTICODEC_CID


def test_resolve_active_grant_counts_access(store, future):
    grant = store.create(LEGACY_CID, future, access_token="tok-active")
    resolver = GrantResolver(store)

    resolution = resolver.resolve("tok-active")

    assert resolution.content_identifier == LEGACY_CID
    assert resolution.metadata_only is False
    assert resolution.access_count == 1
    assert store.get(grant.id).access_count == 1


def test_resolve_rejects_missing_token(store):
    with pytest.raises(MissingParameter):
        GrantResolver(store).resolve("  ")


def test_unknown_and_revoked_tokens_are_indistinguishable(store, future):
    grant = store.create(LEGACY_CID, future, access_token="tok-revoked")
    store.set_active(grant.id, False)
    resolver = GrantResolver(store)

    with pytest.raises(GrantNotFound) as revoked:
        resolver.resolve("tok-revoked")
    with pytest.raises(GrantNotFound) as unknown:
        resolver.resolve("tok-unknown")

    assert revoked.value.to_dict() == unknown.value.to_dict()
    assert store.get(grant.id).access_count == 0


def test_expired_grant_is_denied_without_counting(store, past):
    grant = store.create(LEGACY_CID, past, access_token="tok-expired")

    with pytest.raises(GrantExpired) as excinfo:
        GrantResolver(store).resolve("tok-expired")

    assert excinfo.value.status_code == 403
    assert store.get(grant.id).access_count == 0


def test_expiry_is_checked_against_injected_clock(store):
    expiry = datetime(2030, 1, 1, tzinfo=timezone.utc)
    store.create(LEGACY_CID, expiry, access_token="tok-clock")

    before = GrantResolver(store, clock=lambda: expiry - timedelta(seconds=1))
    after = GrantResolver(store, clock=lambda: expiry + timedelta(seconds=1))

    assert before.resolve("tok-clock").content_identifier == LEGACY_CID
    with pytest.raises(GrantExpired):
        after.resolve("tok-clock")


def test_password_grant_returns_metadata_and_still_counts(store, future):
    grant = store.create(MULTICODEC_CID, future, access_token="tok-secret", has_password=True)

    resolution = GrantResolver(store).resolve("tok-secret")

    assert resolution.metadata_only is True
    metadata = resolution.metadata()
    assert metadata["accessToken"] == "tok-secret"
    assert metadata["contentIdentifier"] == MULTICODEC_CID
    assert metadata["hasPassword"] is True
    assert metadata["expiryTime"].endswith("Z")
    assert "password" in metadata["message"]
    assert store.get(grant.id).access_count == 1


def test_increment_failure_does_not_block_resolution(store, future, monkeypatch):
    store.create(LEGACY_CID, future, access_token="tok-flaky")

    def boom(grant_id):
        raise OperationalError("UPDATE access_grants", {}, Exception("database is locked"))

    monkeypatch.setattr(store, "increment_access_count", boom)

    resolution = GrantResolver(store).resolve("tok-flaky")

    assert resolution.content_identifier == LEGACY_CID
    assert resolution.access_count is None


def test_access_count_only_increases(store, future):
    grant = store.create(LEGACY_CID, future, access_token="tok-many")
    resolver = GrantResolver(store)

    counts = [resolver.resolve("tok-many").access_count for _ in range(3)]

    assert counts == [1, 2, 3]
    assert store.get(grant.id).access_count == 3


def test_record_access_refuses_inactive_grants(store, future):
    grant = store.create(LEGACY_CID, future, access_token="tok-record")
    resolver = GrantResolver(store)

    assert resolver.record_access("tok-record") == 1
    resolver.revoke(grant.id)
    with pytest.raises(GrantExpired) as excinfo:
        resolver.record_access("tok-record")
    with pytest.raises(GrantNotFound):
        resolver.record_access("tok-nope")

    assert excinfo.value.message == "Access has expired or is inactive"


def test_find_by_content_skips_revoked_grants(store, future):
    old = store.create(MULTICODEC_CID, future, access_token="tok-old")
    store.create(MULTICODEC_CID, future, access_token="tok-new")
    store.set_active(old.id, False)
    resolver = GrantResolver(store)

    assert resolver.find_by_content(MULTICODEC_CID).access_token == "tok-new"
    with pytest.raises(GrantNotFound):
        resolver.find_by_content(LEGACY_CID)


def test_revoke_is_idempotent_and_terminal(store, future):
    grant = store.create(LEGACY_CID, future, access_token="tok-revoke")
    resolver = GrantResolver(store)

    assert resolver.revoke(grant.id).is_active is False
    assert resolver.revoke(grant.id).is_active is False
    with pytest.raises(ValueError):
        resolver.update(grant.id, is_active=True)
    with pytest.raises(GrantNotFound):
        resolver.revoke("no-such-grant")
    assert store.get(grant.id).is_active is False


def test_update_changes_expiry(store, future):
    grant = store.create(LEGACY_CID, future, access_token="tok-extend")
    later = future + timedelta(days=7)

    updated = GrantResolver(store).update(grant.id, expiry_time=later)

    assert updated.expiry_time == later
    assert updated.is_active is True
