"""
Clients for the external services used by SpotAlert.

Provides the service contracts and their AWS implementations.
"""

from .base import Match, UpstreamError
from .aws import (
    RekognitionFaceMatcher,
    S3ObjectStore,
    SesNotificationSender,
    build_aws_clients,
)

__all__ = [
    "Match",
    "UpstreamError",
    "RekognitionFaceMatcher",
    "S3ObjectStore",
    "SesNotificationSender",
    "build_aws_clients",
]
