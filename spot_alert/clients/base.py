"""
Contracts for the external services SpotAlert depends on.

The ingestion flow only talks to these protocols, so tests and alternative
backends can stand in for AWS.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Protocol


@dataclass(frozen=True)
class Match:
    """A face in the reference collection that resembles the submitted image."""
    face_id: str
    similarity: float
    external_image_id: Optional[str] = None
    image_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class UpstreamError(Exception):
    """Raised when an external service call fails."""
    def __init__(self, service: str, message: str):
        super().__init__(f"{service}: {message}")
        self.service = service
        self.message = message


class ObjectStore(Protocol):
    def put(self, key: str, data: bytes, content_type: str) -> None: ...

    def presigned_url(self, key: str, expires_in: int = 3600) -> str: ...


class FaceMatcher(Protocol):
    def ensure_collection(self, name: str) -> None: ...

    def search(
        self,
        collection: str,
        data: bytes,
        threshold: float,
        max_results: int
    ) -> List[Match]: ...


class NotificationSender(Protocol):
    def send(self, to: str, subject: str, html_body: str) -> None: ...
