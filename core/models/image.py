"""Image publication data models."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class ReplicationOutcome:
    """Result of copying the image into one region."""
    region: str
    image_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.image_id is not None and self.error is None


@dataclass
class ImageRecord:
    """A published image and its regional copies."""

    image_id: str
    source_region: str
    name: str = ""
    tags: Dict[str, str] = field(default_factory=dict)

    # Only regions whose copy succeeded appear here.
    replicas: Dict[str, str] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def fully_replicated(self) -> bool:
        return not self.failures

    def add_outcome(self, outcome: ReplicationOutcome) -> None:
        if outcome.success:
            self.replicas[outcome.region] = outcome.image_id
        else:
            self.failures[outcome.region] = outcome.error or "unknown error"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "image_id": self.image_id,
            "source_region": self.source_region,
            "name": self.name,
            "tags": self.tags,
            "replicas": self.replicas,
            "failures": self.failures,
        }
