from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from core.models.image import ImageRecord


def _now() -> datetime:
    return datetime.now(timezone.utc)


class BuildPhase(Enum):
    """Build execution phases."""
    ACQUIRE = "acquire"
    PROVISION = "provision"
    REBOOT = "reboot"
    STOP = "stop"
    CREATE_IMAGE = "create_image"
    REPLICATE = "replicate"
    RELEASE = "release"


class PhaseStatus(Enum):
    """Phase execution status."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class BuildStatus(Enum):
    """Overall build status."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL_SUCCESS = "partial_success"
    CANCELLED = "cancelled"


class Disposition(Enum):
    """What happened to the build instance at the end of the run."""
    RELEASED = "released"
    PRESERVED = "preserved"
    RELEASE_FAILED = "release_failed"
    NOT_ACQUIRED = "not_acquired"


@dataclass
class PhaseResult:
    """Result of a build phase execution."""
    phase: BuildPhase
    status: PhaseStatus = PhaseStatus.PENDING

    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    error_message: Optional[str] = None
    results: Dict[str, Any] = field(default_factory=dict)

    @property
    def duration(self) -> Optional[timedelta]:
        """Calculate phase duration."""
        if self.start_time and self.end_time:
            return self.end_time - self.start_time
        return None

    @property
    def is_successful(self) -> bool:
        return self.status == PhaseStatus.COMPLETED

    def mark_started(self) -> None:
        self.status = PhaseStatus.RUNNING
        self.start_time = _now()

    def mark_completed(self, results: Optional[Dict[str, Any]] = None) -> None:
        self.status = PhaseStatus.COMPLETED
        self.end_time = _now()
        if results:
            self.results.update(results)

    def mark_failed(self, error: str) -> None:
        self.status = PhaseStatus.FAILED
        self.end_time = _now()
        self.error_message = error

    def mark_skipped(self, reason: str = "Skipped by configuration") -> None:
        self.status = PhaseStatus.SKIPPED
        self.end_time = _now()
        self.error_message = reason


@dataclass
class BuildResult:
    """Complete build execution result."""

    build_id: Optional[str] = None
    build_name: str = "image build"

    status: BuildStatus = BuildStatus.PENDING
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    phase_results: Dict[BuildPhase, PhaseResult] = field(default_factory=dict)

    instance_id: Optional[str] = None
    public_ip: Optional[str] = None
    image: Optional[ImageRecord] = None
    disposition: Optional[Disposition] = None
    preserved_key_path: Optional[str] = None

    errors: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.start_time is None:
            self.start_time = _now()

    @property
    def duration(self) -> Optional[timedelta]:
        if self.start_time and self.end_time:
            return self.end_time - self.start_time
        return None

    @property
    def is_successful(self) -> bool:
        """Completed, or partially replicated under the lenient policy."""
        return self.status in (BuildStatus.COMPLETED, BuildStatus.PARTIAL_SUCCESS)

    @property
    def exit_code(self) -> int:
        return 0 if self.is_successful else 1

    def start_phase(self, phase: BuildPhase) -> PhaseResult:
        """Create, register and start a phase result."""
        phase_result = PhaseResult(phase=phase)
        phase_result.mark_started()
        self.phase_results[phase] = phase_result
        return phase_result

    def skip_phase(self, phase: BuildPhase, reason: str) -> None:
        phase_result = PhaseResult(phase=phase)
        phase_result.mark_skipped(reason)
        self.phase_results[phase] = phase_result

    def get_phase_result(self, phase: BuildPhase) -> Optional[PhaseResult]:
        return self.phase_results.get(phase)

    def add_error(self, error: str) -> None:
        self.errors.append(error)

    def mark_started(self) -> None:
        self.status = BuildStatus.RUNNING

    def finish(self, status: BuildStatus) -> None:
        self.status = status
        self.end_time = _now()

    def get_summary(self) -> Dict[str, Any]:
        """Get build execution summary."""
        return {
            "build_id": self.build_id,
            "build_name": self.build_name,
            "status": self.status.value,
            "duration": str(self.duration) if self.duration else None,
            "instance_id": self.instance_id,
            "disposition": self.disposition.value if self.disposition else None,
            "image": self.image.to_dict() if self.image else None,
            "preserved_key_path": self.preserved_key_path,
            "phases": {
                phase.value: result.status.value
                for phase, result in self.phase_results.items()
            },
            "errors": list(self.errors),
        }
