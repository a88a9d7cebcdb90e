# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Stage event stream for backup and restore runs.

Every stage of a run emits a started event and then either a completed or
a failed event. Events are logged through structlog and handed to an
optional sink, which is how an external monitoring system observes runs.
"""

from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import datetime, UTC
from typing import Callable, Generator, List, Type

import structlog
from ulid import ULID

from dbsnap.exceptions import DBSnapError

logger = structlog.get_logger()


@dataclass(frozen=True)
class StageEvent:
    """One transition of a run's state machine."""

    run_id: str
    operation: str  # backup | restore | sweep
    stage: str
    outcome: str  # started | completed | failed | cancelled
    timestamp: datetime
    duration_seconds: float | None = None
    error: str | None = None

    def as_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


EventSink = Callable[[StageEvent], None]


class StageRecorder:
    """
    Wraps each stage of a run.

    A failing stage tags the exception with its name, so the caller can
    report where the run stopped. Exceptions from outside dbsnap are
    wrapped in the stage's error type.
    """

    def __init__(
        self,
        operation: str,
        sink: EventSink | None = None,
        run_id: str | None = None,
    ) -> None:
        self.operation = operation
        self.run_id = run_id or str(ULID())
        self.sink = sink
        self.events: List[StageEvent] = []
        self.completed_stages: List[str] = []
        self.failed_stage: str | None = None

    @contextmanager
    def stage(
        self,
        name: str,
        error_type: Type[DBSnapError] = DBSnapError,
    ) -> Generator[None, None, None]:
        started = datetime.now(UTC)
        self._emit(name, "started", started)

        try:
            yield
        except DBSnapError as e:
            if e.stage is None:
                e.stage = name
            self._fail(name, started, str(e))
            raise
        except Exception as e:
            self._fail(name, started, str(e))
            raise error_type(
                f"{name} failed: {e}",
                details={"error_type": type(e).__name__},
                stage=name,
            ) from e
        except BaseException as e:
            # Cancellation and interrupts pass through unchanged
            self.failed_stage = name
            self._emit(name, "cancelled", started, error=type(e).__name__)
            raise

        self.completed_stages.append(name)
        self._emit(name, "completed", started)

    def _fail(self, name: str, started: datetime, error: str) -> None:
        self.failed_stage = name
        self._emit(name, "failed", started, error=error)

    def _emit(
        self,
        stage: str,
        outcome: str,
        started: datetime,
        error: str | None = None,
    ) -> None:
        now = datetime.now(UTC)
        event = StageEvent(
            run_id=self.run_id,
            operation=self.operation,
            stage=stage,
            outcome=outcome,
            timestamp=now,
            duration_seconds=None if outcome == "started" else (now - started).total_seconds(),
            error=error,
        )
        self.events.append(event)

        log = logger.error if outcome in ("failed", "cancelled") else logger.info
        log(
            f"stage_{outcome}",
            run_id=self.run_id,
            operation=self.operation,
            stage=stage,
            duration=event.duration_seconds,
            error=error,
        )

        if self.sink is not None:
            try:
                self.sink(event)
            except Exception as e:
                logger.warning("event_sink_failed", stage=stage, error=str(e))
