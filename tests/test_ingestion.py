"""
Tests for the ingestion flow.

Covers classification, persistence, metering, plan ceilings and the
best-effort notification contract.
"""

from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from spot_alert.clients.base import UpstreamError
from spot_alert.core.classification import AlertType
from spot_alert.core.pricing import PlanTable
from spot_alert.storage.repository import AlertRecorder, UsageLedger

from conftest import FIXED_NOW, known_match

ALERT_SUBJECT = "[SpotAlert] Unknown Face Detected"
TOPUP_SUBJECT = "[SpotAlert] Top-Up Needed"


def _subjects(sender, subject):
    return [sent for sent in sender.sent if sent[1] == subject]


class TestUnknownFace:
    """An image with no matching face."""

    def test_end_to_end_unknown_face(self, make_coordinator, db_path):
        """Free plan, no matches: one alert row, two usage rows, one alert email."""
        coordinator, matcher, store, sender = make_coordinator(matches=[])

        result = coordinator.handle(b"jpeg-bytes", filename="door.jpg", plan="Free", recipient="a@x.com")

        assert result.ok is True
        assert result.faces == []
        assert result.key == f"uploads/{int(FIXED_NOW.timestamp() * 1000)}_door.jpg"
        assert result.to_response() == {"ok": True, "faces": [], "key": result.key}
        assert result.alert_type == AlertType.UNKNOWN_FACE

        alerts = AlertRecorder(db_path).fetch_recent()
        assert len(alerts) == 1
        assert alerts[0].alert_type == "unknown_face"
        assert alerts[0].image_key == result.key

        entries = UsageLedger(db_path).fetch_all()
        assert [e.channel for e in entries] == ["email", "app"]
        assert all(e.recipient == "a@x.com" for e in entries)

        alert_emails = _subjects(sender, ALERT_SUBJECT)
        assert len(alert_emails) == 1
        assert alert_emails[0][0] == "a@x.com"
        assert result.key in alert_emails[0][2]
        assert result.alert_sent is True

    def test_image_is_stored_under_key(self, make_coordinator):
        """Uploaded bytes are written to the object store with the content type."""
        coordinator, _, store, _ = make_coordinator()

        result = coordinator.handle(b"png-bytes", filename="cam.png", content_type="image/png")

        assert store.objects[result.key] == (b"png-bytes", "image/png")

    def test_search_uses_configured_collection(self, make_coordinator, config):
        """The configured collection, threshold and max faces are used."""
        coordinator, matcher, _, _ = make_coordinator()

        coordinator.handle(b"img")

        assert matcher.collections == ["SpotAlertCollection"]
        assert matcher.searches == [("SpotAlertCollection", b"img", 90.0, 5)]


class TestKnownFace:
    """An image that matches an enrolled face."""

    def test_known_face_is_not_emailed(self, make_coordinator, db_path):
        """Known faces are recorded but never trigger an alert email."""
        coordinator, _, _, sender = make_coordinator(matches=[known_match()])

        result = coordinator.handle(b"img", filename="a.jpg", plan="Premium", recipient="b@x.com")

        assert result.ok is True
        assert result.alert_type == AlertType.KNOWN_FACE
        assert len(result.faces) == 1
        assert result.to_response()["faces"][0]["external_image_id"] == "alice"
        assert _subjects(sender, ALERT_SUBJECT) == []
        assert result.alert_sent is False

        alerts = AlertRecorder(db_path).fetch_recent()
        assert [a.alert_type for a in alerts] == ["known_face"]

    def test_known_face_is_still_billed(self, make_coordinator, db_path):
        """Both channels are charged even when no email goes out."""
        coordinator, _, _, _ = make_coordinator(matches=[known_match()])

        coordinator.handle(b"img", plan="Premium", recipient="b@x.com")

        entries = UsageLedger(db_path).fetch_all()
        assert len(entries) == 2
        assert sorted(e.channel for e in entries) == ["app", "email"]
        assert sum(Decimal(str(e.cost)) for e in entries) == Decimal("0.003")


class TestFailures:
    """Upstream failures and malformed input."""

    def test_face_search_failure(self, make_coordinator, db_path):
        """A failed search returns an error and persists nothing."""
        coordinator, _, store, sender = make_coordinator(
            search_error=UpstreamError("rekognition", "There are no faces in the image.")
        )

        result = coordinator.handle(b"img", recipient="a@x.com")

        assert result.ok is False
        assert "no faces" in result.error
        assert result.to_response() == {"error": result.error}
        assert store.objects == {}
        assert AlertRecorder(db_path).fetch_recent() == []
        assert UsageLedger(db_path).fetch_all() == []
        assert sender.sent == []

    def test_upload_failure_keeps_matches(self, make_coordinator, db_path):
        """A failed upload reports the error alongside the computed matches."""
        coordinator, _, _, sender = make_coordinator(
            matches=[known_match()],
            put_error=UpstreamError("s3", "Access Denied")
        )

        result = coordinator.handle(b"img")

        assert result.ok is False
        assert result.error == "s3: Access Denied"
        assert len(result.faces) == 1
        assert AlertRecorder(db_path).fetch_recent() == []
        assert UsageLedger(db_path).fetch_all() == []
        assert sender.sent == []

    def test_notification_failure_is_swallowed(self, make_coordinator, db_path):
        """Email failures never fail the ingestion."""
        coordinator, _, _, sender = make_coordinator(send_error=UpstreamError("ses", "throttled"))

        result = coordinator.handle(b"img", plan="Standard", recipient="a@x.com")

        assert result.ok is True
        assert result.alert_sent is False
        assert len(sender.sent) == 1
        assert len(AlertRecorder(db_path).fetch_recent()) == 1
        assert len(UsageLedger(db_path).fetch_all()) == 2

    def test_empty_image_rejected(self, make_coordinator):
        coordinator, matcher, _, _ = make_coordinator()

        with pytest.raises(ValueError):
            coordinator.handle(b"")
        assert matcher.searches == []


class TestDefaults:
    """Plan and recipient defaults."""

    def test_missing_recipient_uses_operator(self, make_coordinator, db_path):
        coordinator, _, _, sender = make_coordinator()

        coordinator.handle(b"img", recipient="   ")

        entries = UsageLedger(db_path).fetch_all()
        assert {e.recipient for e in entries} == {"admin@spotalert.live"}
        assert _subjects(sender, ALERT_SUBJECT)[0][0] == "admin@spotalert.live"

    def test_unknown_plan_bills_as_free(self, make_coordinator, db_path):
        """Unknown plans fall back to Free, whose zero ceiling is exceeded at once."""
        coordinator, _, _, sender = make_coordinator()

        result = coordinator.handle(b"img", plan="Platinum", recipient="a@x.com")

        assert {e.plan for e in UsageLedger(db_path).fetch_all()} == {"Free"}
        assert result.topup_sent is True
        assert len(_subjects(sender, TOPUP_SUBJECT)) == 1

    def test_plan_name_is_case_insensitive(self, make_coordinator, db_path):
        coordinator, _, _, sender = make_coordinator()

        coordinator.handle(b"img", plan="standard", recipient="a@x.com")

        assert {e.plan for e in UsageLedger(db_path).fetch_all()} == {"Standard"}
        assert _subjects(sender, TOPUP_SUBJECT) == []


class TestPlanCeiling:
    """Top-up notices when month-to-date spend passes the plan ceiling."""

    def test_topup_fires_only_when_strictly_exceeded(self, make_coordinator, config):
        """Ceiling 0.006: the second call reaches it, the third passes it."""
        cfg = replace(config, plans=PlanTable({"Free": Decimal("0"), "Standard": Decimal("0.006")}))
        coordinator, _, _, sender = make_coordinator(cfg=cfg, matches=[known_match()])

        first = coordinator.handle(b"img", plan="Standard", recipient="a@x.com")
        second = coordinator.handle(b"img", plan="Standard", recipient="a@x.com")
        third = coordinator.handle(b"img", plan="Standard", recipient="a@x.com")

        assert [first.topup_sent, second.topup_sent, third.topup_sent] == [False, False, True]
        topups = _subjects(sender, TOPUP_SUBJECT)
        assert len(topups) == 1
        assert topups[0][0] == "a@x.com"

    def test_standard_plan_crosses_five(self, make_coordinator, db_path):
        """Accumulated 4.997 reaches 5.000 (no notice), then 5.003 (notice)."""
        ledger = UsageLedger(db_path)
        ledger.record("a@x.com", "Standard", "email", Decimal("4.997"), FIXED_NOW)
        coordinator, _, _, sender = make_coordinator(matches=[known_match()])

        at_ceiling = coordinator.handle(b"img", plan="Standard", recipient="a@x.com")
        assert at_ceiling.topup_sent is False
        assert ledger.total_since("a@x.com", datetime(2026, 10, 1, tzinfo=timezone.utc)) == Decimal("5.000")

        over = coordinator.handle(b"img", plan="Standard", recipient="a@x.com")
        assert over.topup_sent is True
        assert "Standard" in _subjects(sender, TOPUP_SUBJECT)[0][2]

    def test_previous_month_usage_is_ignored(self, make_coordinator, db_path):
        """Only entries since the first of the current month count."""
        UsageLedger(db_path).record(
            "a@x.com", "Standard", "sms", Decimal("100"),
            datetime(2026, 9, 30, 23, 59, 59, tzinfo=timezone.utc)
        )
        coordinator, _, _, sender = make_coordinator(matches=[known_match()])

        result = coordinator.handle(b"img", plan="Standard", recipient="a@x.com")

        assert result.topup_sent is False
        assert _subjects(sender, TOPUP_SUBJECT) == []

    def test_other_recipients_do_not_count(self, make_coordinator, db_path):
        UsageLedger(db_path).record("other@x.com", "Standard", "sms", Decimal("100"), FIXED_NOW)
        coordinator, _, _, _ = make_coordinator(matches=[known_match()])

        result = coordinator.handle(b"img", plan="Standard", recipient="a@x.com")

        assert result.topup_sent is False


class TestStorageKeys:
    def test_unique_keys_do_not_collide(self, make_coordinator, config):
        """With unique keys, two uploads in the same millisecond get distinct keys."""
        cfg = replace(config, storage=replace(config.storage, unique_keys=True))
        coordinator, _, store, _ = make_coordinator(cfg=cfg)

        first = coordinator.handle(b"one", filename="same.jpg")
        second = coordinator.handle(b"two", filename="same.jpg")

        assert first.key != second.key
        assert len(store.objects) == 2
