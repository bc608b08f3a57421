"""
AWS-backed clients: S3 object storage, Rekognition face search, SES email.

Each wrapper takes an already-built boto3 client so callers (and tests) decide
how sessions and credentials are set up. Service errors are re-raised as
UpstreamError carrying the AWS error message.
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Set

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from spot_alert.config.loader import SpotAlertConfig
from .base import Match, UpstreamError

logger = logging.getLogger(__name__)


def _error_message(error: Exception) -> str:
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Message") or str(error)
    return str(error)


class S3ObjectStore:
    """Stores uploaded images in a single S3 bucket."""

    def __init__(self, bucket: str, client: Any):
        if not bucket or not bucket.strip():
            raise ValueError("bucket is required and cannot be empty")
        self.bucket = bucket
        self.client = client

    def put(self, key: str, data: bytes, content_type: str = "image/jpeg") -> None:
        """Upload ``data`` under ``key``.

        Raises:
            UpstreamError: If S3 rejects the upload
        """
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            raise UpstreamError("s3", _error_message(e)) from e
        logger.info("Uploaded s3://%s/%s", self.bucket, key)

    def presigned_url(self, key: str, expires_in: int = 3600) -> str:
        """Return a time-limited GET URL for a stored object."""
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            raise UpstreamError("s3", _error_message(e)) from e


class RekognitionFaceMatcher:
    """Searches a Rekognition collection for faces matching an image.

    Collections are created on first use. Once a collection is known to exist
    it is not listed again for the lifetime of the matcher.
    """

    def __init__(self, client: Any):
        self.client = client
        self._known_collections: Set[str] = set()

    def ensure_collection(self, name: str) -> None:
        """Create the collection unless it already exists.

        Raises:
            UpstreamError: If listing or creating the collection fails
        """
        if name in self._known_collections:
            return

        try:
            existing: List[str] = []
            paginator = self.client.get_paginator("list_collections")
            for page in paginator.paginate():
                existing.extend(page.get("CollectionIds", []))

            if name not in existing:
                self.client.create_collection(CollectionId=name)
                logger.info("Created Rekognition collection: %s", name)
            else:
                logger.debug("Using Rekognition collection: %s", name)
        except (ClientError, BotoCoreError) as e:
            raise UpstreamError("rekognition", _error_message(e)) from e

        self._known_collections.add(name)

    def search(
        self,
        collection: str,
        data: bytes,
        threshold: float,
        max_results: int
    ) -> List[Match]:
        """Search ``collection`` for faces resembling the image bytes.

        Returns:
            Matches in the order Rekognition ranks them (most similar first)

        Raises:
            UpstreamError: If the search fails, including images without a face
        """
        try:
            response = self.client.search_faces_by_image(
                CollectionId=collection,
                Image={"Bytes": data},
                FaceMatchThreshold=threshold,
                MaxFaces=max_results,
            )
        except (ClientError, BotoCoreError) as e:
            raise UpstreamError("rekognition", _error_message(e)) from e

        matches = []
        for face_match in response.get("FaceMatches", []):
            face = face_match.get("Face", {})
            matches.append(Match(
                face_id=face.get("FaceId", ""),
                similarity=float(face_match.get("Similarity", 0.0)),
                external_image_id=face.get("ExternalImageId"),
                image_id=face.get("ImageId"),
            ))
        logger.info("Face matches: %d", len(matches))
        return matches


class SesNotificationSender:
    """Sends HTML email through SES from a fixed sender address."""

    def __init__(self, from_address: str, client: Any):
        self.from_address = from_address
        self.client = client

    def send(self, to: str, subject: str, html_body: str) -> None:
        """Send one email.

        Raises:
            UpstreamError: If SES rejects the message
        """
        try:
            self.client.send_email(
                Source=self.from_address,
                Destination={"ToAddresses": [to]},
                Message={
                    "Subject": {"Data": subject},
                    "Body": {"Html": {"Data": html_body}},
                },
            )
        except (ClientError, BotoCoreError) as e:
            raise UpstreamError("ses", _error_message(e)) from e
        logger.info("Email sent to %s", to)


@dataclass
class AwsClients:
    object_store: S3ObjectStore
    face_matcher: RekognitionFaceMatcher
    sender: SesNotificationSender


def build_aws_clients(config: SpotAlertConfig, session: Optional[Any] = None) -> AwsClients:
    """Build the three AWS wrappers from one boto3 session.

    Credentials come from the standard boto3 chain (environment, profile,
    instance role).
    """
    session = session or boto3.Session(region_name=config.aws.region)
    return AwsClients(
        object_store=S3ObjectStore(config.aws.bucket, session.client("s3")),
        face_matcher=RekognitionFaceMatcher(session.client("rekognition")),
        sender=SesNotificationSender(config.email.from_address, session.client("ses")),
    )
