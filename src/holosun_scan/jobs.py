"""Single-flight job tracker exposing scan progress to status queries."""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from holosun_scan.errors import InvariantViolation


@dataclass(frozen=True)
class JobState:
    running: bool = False
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    processed: int = 0
    total: int = 0
    accepted: int = 0
    errors: int = 0
    write_errors: int = 0
    dealers_collected: int = 0
    duplicates: int = 0
    current_item: Optional[Any] = None
    interrupted: bool = False

    @property
    def status(self) -> str:
        if self.running:
            return "running"
        if self.started_at is None:
            return "idle"
        return "completed"

    @property
    def percent_complete(self) -> float:
        if self.total <= 0:
            return 0.0
        return round(self.processed / self.total * 100, 1)

    def elapsed_seconds(self, now: Optional[datetime] = None) -> int:
        if self.started_at is None:
            return 0
        end = self.finished_at or now or datetime.now(timezone.utc)
        return max(int((end - self.started_at).total_seconds()), 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "interrupted": self.interrupted,
            "progress": {
                "processed_zip_codes": self.processed,
                "total_zip_codes": self.total,
                "percent_complete": f"{self.percent_complete:.1f}%",
                "current_zip": self.current_item,
                "dealers_found": self.accepted,
                "dealers_collected": self.dealers_collected,
                "duplicates": self.duplicates,
                "errors": self.errors,
                "write_errors": self.write_errors,
                "elapsed_seconds": self.elapsed_seconds(),
            },
        }


class JobTracker:
    """Mutable job state owned by the orchestrator.

    All mutators run synchronously on the event loop thread, so a snapshot
    never observes a half-applied iteration and ``try_start`` is an atomic
    check-and-set without a lock.
    """

    def __init__(self) -> None:
        self._state = JobState()

    @property
    def running(self) -> bool:
        return self._state.running

    def try_start(self, total: int) -> bool:
        if self._state.running:
            return False
        self._state = JobState(
            running=True,
            started_at=datetime.now(timezone.utc),
            total=total,
        )
        return True

    def record_processed(
        self,
        current_item: Any,
        *,
        accepted: int = 0,
        failed: bool = False,
        collected: int = 0,
        duplicates: int = 0,
        write_failed: bool = False,
    ) -> None:
        state = self._state
        self._state = dataclasses.replace(
            state,
            processed=state.processed + 1,
            accepted=state.accepted + accepted,
            errors=state.errors + (1 if failed else 0),
            write_errors=state.write_errors + (1 if write_failed else 0),
            dealers_collected=state.dealers_collected + collected,
            duplicates=state.duplicates + duplicates,
            current_item=current_item,
        )

    def finish(self, *, interrupted: bool = False) -> JobState:
        state = self._state
        self._state = dataclasses.replace(
            state,
            running=False,
            finished_at=datetime.now(timezone.utc),
            interrupted=interrupted,
        )
        if not interrupted and state.processed != state.total:
            raise InvariantViolation(
                f"Job finished with processed={state.processed} but total={state.total}"
            )
        return self._state

    def snapshot(self) -> JobState:
        return self._state
