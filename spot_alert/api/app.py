"""
FastAPI application factory.

Collaborators not passed in are built from the configuration, so production
startup only needs a SpotAlertConfig while tests can inject fakes.
"""

import logging
from typing import Optional

from fastapi import FastAPI

from spot_alert.clients.aws import build_aws_clients
from spot_alert.clients.base import FaceMatcher, NotificationSender, ObjectStore
from spot_alert.config.loader import SpotAlertConfig
from spot_alert.core.ingestion import IngestionCoordinator
from spot_alert.core.notifications import BestEffortNotifier
from spot_alert.storage.repository import AlertRecorder, UsageLedger, initialize_schema
from .routes import elite_router, router, usage_router

logger = logging.getLogger(__name__)


def create_app(
    config: SpotAlertConfig,
    object_store: Optional[ObjectStore] = None,
    face_matcher: Optional[FaceMatcher] = None,
    sender: Optional[NotificationSender] = None,
    coordinator: Optional[IngestionCoordinator] = None,
) -> FastAPI:
    """Build the SpotAlert API.

    Args:
        config: Startup configuration
        object_store: Image store (defaults to S3)
        face_matcher: Face search client (defaults to Rekognition)
        sender: Email sender (defaults to SES)
        coordinator: Fully built coordinator; overrides the three clients above

    Returns:
        Configured FastAPI application
    """
    initialize_schema(config.storage.db_path)
    alerts = AlertRecorder(config.storage.db_path)
    ledger = UsageLedger(config.storage.db_path)

    if coordinator is None:
        if object_store is None or face_matcher is None or sender is None:
            aws = build_aws_clients(config)
            object_store = object_store or aws.object_store
            face_matcher = face_matcher or aws.face_matcher
            sender = sender or aws.sender
        coordinator = IngestionCoordinator(
            config=config,
            face_matcher=face_matcher,
            object_store=object_store,
            notifier=BestEffortNotifier(sender),
            alerts=alerts,
            ledger=ledger,
        )
    else:
        alerts = coordinator.alerts
        ledger = coordinator.ledger
        object_store = object_store or coordinator.object_store

    app = FastAPI(title="SpotAlert")
    app.state.config = config
    app.state.coordinator = coordinator
    app.state.alerts = alerts
    app.state.ledger = ledger
    app.state.object_store = object_store

    app.include_router(router, tags=["alerts"])
    # Usage routes are served both bare and under /api
    app.include_router(usage_router, tags=["usage"])
    app.include_router(usage_router, prefix="/api", tags=["usage"])
    app.include_router(elite_router)

    logger.info(
        "SpotAlert API ready (bucket=%s, collection=%s, db=%s)",
        config.aws.bucket, config.aws.collection_id, config.storage.db_path
    )
    return app
