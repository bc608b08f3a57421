"""
Alert ingestion and usage accounting.

One call per submitted image:

1. Classify the image against the face collection
2. Persist the image to the object store
3. Record the alert
4. Charge the email and app channels to the recipient
5. Send a top-up notice if month-to-date spend is over the plan ceiling
6. Send an alert email when no known face matched

Classification and upload failures end the call with a failed result; later
steps are not rolled back. Notifications never fail the call.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from spot_alert.clients.base import FaceMatcher, Match, ObjectStore
from spot_alert.config.loader import SpotAlertConfig
from spot_alert.storage.repository import AlertRecorder, UsageLedger
from .classification import AlertType, build_storage_key, classify
from .notifications import BestEffortNotifier, render_alert_body, render_topup_body
from .pricing import Channel, exceeds_ceiling, month_start

logger = logging.getLogger(__name__)

# Every ingestion is billed for these channels, whether or not an email goes out
BILLED_CHANNELS = (Channel.EMAIL, Channel.APP)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class IngestionResult:
    """Outcome of one ingestion call."""
    ok: bool
    faces: List[Match] = field(default_factory=list)
    key: Optional[str] = None
    alert_type: Optional[AlertType] = None
    error: Optional[str] = None
    topup_sent: bool = False
    alert_sent: bool = False

    def to_response(self) -> Dict[str, Any]:
        """JSON body returned to the uploader."""
        if not self.ok:
            return {"error": self.error}
        return {
            "ok": True,
            "faces": [match.to_dict() for match in self.faces],
            "key": self.key,
        }


class IngestionCoordinator:
    """Runs the upload, detect, record, meter and notify flow."""

    def __init__(
        self,
        config: SpotAlertConfig,
        face_matcher: FaceMatcher,
        object_store: ObjectStore,
        notifier: BestEffortNotifier,
        alerts: AlertRecorder,
        ledger: UsageLedger,
        clock: Callable[[], datetime] = utcnow
    ):
        self.config = config
        self.face_matcher = face_matcher
        self.object_store = object_store
        self.notifier = notifier
        self.alerts = alerts
        self.ledger = ledger
        self.clock = clock

    def handle(
        self,
        image_bytes: bytes,
        filename: Optional[str] = None,
        plan: Optional[str] = None,
        recipient: Optional[str] = None,
        content_type: str = "image/jpeg"
    ) -> IngestionResult:
        """Ingest one image.

        Args:
            image_bytes: Raw image content (required)
            filename: Original client filename, used in the storage key
            plan: Declared plan; unknown or missing plans bill as Free
            recipient: Billed and notified address; defaults to the operator
            content_type: MIME type stored with the object

        Returns:
            IngestionResult; ``ok`` is False if classification or upload failed

        Raises:
            ValueError: If image_bytes is empty
            sqlite3.Error: Store failures are not handled here
        """
        if not image_bytes:
            raise ValueError("image_bytes is required and cannot be empty")

        plan_name = self.config.plans.resolve(plan)
        recipient = (recipient or "").strip() or self.config.email.operator_address

        collection = self.config.aws.collection_id
        try:
            self.face_matcher.ensure_collection(collection)
            matches = self.face_matcher.search(
                collection,
                image_bytes,
                self.config.face_match.threshold,
                self.config.face_match.max_faces,
            )
        except Exception as e:
            logger.error("Face search failed for %s: %s", recipient, e)
            return IngestionResult(ok=False, error=str(e))

        now = self.clock()
        key = build_storage_key(
            filename,
            now,
            prefix=self.config.storage.key_prefix,
            unique=self.config.storage.unique_keys,
        )
        try:
            self.object_store.put(key, image_bytes, content_type)
        except Exception as e:
            logger.error("Upload of %s failed: %s", key, e)
            return IngestionResult(ok=False, faces=matches, error=str(e))

        alert_type = classify(matches)
        self.alerts.record(alert_type.value, key, now)

        for channel in BILLED_CHANNELS:
            self.ledger.record(
                recipient,
                plan_name,
                channel,
                self.config.pricing.get_cost(channel),
                now,
            )

        topup_sent = self._check_plan_ceiling(recipient, plan_name, now)

        alert_sent = False
        if alert_type is AlertType.UNKNOWN_FACE:
            alert_sent = self.notifier.notify(
                recipient,
                self.config.email.alert_subject,
                render_alert_body(key, now),
            )

        logger.info("Ingested %s as %s for %s (%s)", key, alert_type.value, recipient, plan_name)
        return IngestionResult(
            ok=True,
            faces=matches,
            key=key,
            alert_type=alert_type,
            topup_sent=topup_sent,
            alert_sent=alert_sent,
        )

    def _check_plan_ceiling(self, recipient: str, plan: str, now: datetime) -> bool:
        """Send a top-up notice if month-to-date spend exceeds the plan ceiling.

        Returns:
            True if a notice was sent successfully
        """
        total = self.ledger.total_since(recipient, month_start(now))
        ceiling = self.config.plans.get_ceiling(plan)
        if not exceeds_ceiling(total, ceiling):
            return False

        logger.info(
            "Month-to-date usage %s for %s exceeds %s ceiling %s",
            total, recipient, plan, ceiling
        )
        return self.notifier.notify(
            recipient,
            self.config.email.topup_subject,
            render_topup_body(plan, total, ceiling),
        )
