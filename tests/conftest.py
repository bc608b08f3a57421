"""
Shared fixtures and fakes for the SpotAlert tests.
"""

import os
import tempfile
from datetime import datetime, timezone

import pytest

from spot_alert.clients.base import Match
from spot_alert.config.loader import SpotAlertConfig, StorageConfig
from spot_alert.core.ingestion import IngestionCoordinator
from spot_alert.core.notifications import BestEffortNotifier
from spot_alert.storage.repository import AlertRecorder, UsageLedger, initialize_schema

FIXED_NOW = datetime(2026, 10, 17, 12, 0, 0, tzinfo=timezone.utc)


class FakeFaceMatcher:
    """Returns canned matches and remembers what it was asked."""

    def __init__(self, matches=None, error=None):
        self.matches = list(matches or [])
        self.error = error
        self.collections = []
        self.searches = []

    def ensure_collection(self, name):
        self.collections.append(name)

    def search(self, collection, data, threshold, max_results):
        self.searches.append((collection, data, threshold, max_results))
        if self.error:
            raise self.error
        return list(self.matches)


class FakeObjectStore:
    def __init__(self, error=None):
        self.error = error
        self.objects = {}

    def put(self, key, data, content_type="image/jpeg"):
        if self.error:
            raise self.error
        self.objects[key] = (data, content_type)

    def presigned_url(self, key, expires_in=3600):
        if self.error:
            raise self.error
        return f"https://spotalert.s3.amazonaws.com/{key}?expires={expires_in}"


class FakeSender:
    def __init__(self, error=None):
        self.error = error
        self.sent = []

    def send(self, to, subject, html_body):
        self.sent.append((to, subject, html_body))
        if self.error:
            raise self.error


def known_match(face_id="11111111-1111-1111-1111-111111111111", similarity=98.5):
    return Match(face_id=face_id, similarity=similarity, external_image_id="alice")


@pytest.fixture
def db_path():
    with tempfile.TemporaryDirectory() as temp_dir:
        path = os.path.join(temp_dir, "test.db")
        initialize_schema(path)
        yield path


@pytest.fixture
def config(db_path):
    return SpotAlertConfig(storage=StorageConfig(db_path=db_path))


@pytest.fixture
def make_coordinator(config):
    """Build a coordinator around fakes; returns (coordinator, matcher, store, sender)."""
    def _make(matches=None, search_error=None, put_error=None, send_error=None,
              cfg=None, clock=lambda: FIXED_NOW):
        cfg = cfg or config
        matcher = FakeFaceMatcher(matches, search_error)
        store = FakeObjectStore(put_error)
        sender = FakeSender(send_error)
        coordinator = IngestionCoordinator(
            config=cfg,
            face_matcher=matcher,
            object_store=store,
            notifier=BestEffortNotifier(sender),
            alerts=AlertRecorder(cfg.storage.db_path),
            ledger=UsageLedger(cfg.storage.db_path),
            clock=clock,
        )
        return coordinator, matcher, store, sender
    return _make

