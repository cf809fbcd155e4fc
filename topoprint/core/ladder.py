"""Resolution fallback ladder.

A request is tried at its own (zoom, mesh segments) first and then at
progressively coarser settings. Attempts report an explicit outcome; the
ladder loop returns the first success and otherwise surfaces the last
failure unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar

from topoprint.config import LadderConfig
from topoprint.exceptions import FatalSourceError, GeometryError, SourceError, TopoPrintError
from topoprint.types import Resolution
from topoprint.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Finest first
TIER_ORDER: tuple[Resolution, ...] = (
    Resolution.ULTRA,
    Resolution.HIGH,
    Resolution.MEDIUM,
    Resolution.LOW,
)


class FailureKind(str, Enum):
    """Why an attempt failed."""

    GEOMETRY = "geometry"
    SOURCE = "source"
    FATAL = "fatal"

    @property
    def retryable(self) -> bool:
        return self is not FailureKind.FATAL


@dataclass(frozen=True)
class Attempt:
    """One rung of the ladder."""

    zoom: int
    max_segments: int

    def is_below(self, other: "Attempt") -> bool:
        """True if no finer than `other` in either component and different from it."""
        return (
            self.zoom <= other.zoom
            and self.max_segments <= other.max_segments
            and self != other
        )


@dataclass
class AttemptOutcome(Generic[T]):
    """Result of running one attempt: a value, or an error with its kind."""

    attempt: Attempt
    value: Optional[T] = None
    error: Optional[TopoPrintError] = None
    kind: Optional[FailureKind] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, attempt: Attempt, value: T) -> "AttemptOutcome[T]":
        return cls(attempt=attempt, value=value)

    @classmethod
    def failure(cls, attempt: Attempt, error: TopoPrintError) -> "AttemptOutcome[T]":
        return cls(attempt=attempt, error=error, kind=classify_failure(error))


def classify_failure(error: TopoPrintError) -> FailureKind:
    if isinstance(error, FatalSourceError):
        return FailureKind.FATAL
    if isinstance(error, SourceError):
        return FailureKind.SOURCE
    if isinstance(error, GeometryError):
        return FailureKind.GEOMETRY
    return FailureKind.FATAL


def requested_attempt(resolution: Resolution, config: LadderConfig) -> Attempt:
    tier = config.tiers[resolution.value]
    return Attempt(zoom=tier.zoom, max_segments=tier.max_segments)


def build_ladder(resolution: Resolution, config: LadderConfig) -> list[Attempt]:
    """Ordered attempts from the requested tier down to the coarsest tier's zoom floor.

    Each tier descends in zoom to the next coarser tier's zoom; the coarsest
    tier descends to `zoom_floor`. Both components never increase from one
    attempt to the next.
    """
    tiers = [t for t in TIER_ORDER if t.value in config.tiers]
    tiers = tiers[tiers.index(resolution):]

    attempts: list[Attempt] = []
    for position, tier_name in enumerate(tiers):
        tier = config.tiers[tier_name.value]
        zoom = tier.zoom
        segments = tier.max_segments
        if attempts:
            zoom = min(zoom, attempts[-1].zoom)
            segments = min(segments, attempts[-1].max_segments)

        if position + 1 < len(tiers):
            floor = config.tiers[tiers[position + 1].value].zoom
        else:
            floor = config.zoom_floor
        floor = min(max(floor, config.zoom_floor), zoom)

        for z in range(zoom, floor - 1, -1):
            rung = Attempt(zoom=z, max_segments=segments)
            if not attempts or attempts[-1] != rung:
                attempts.append(rung)

    return attempts


def run_ladder(
    attempts: list[Attempt],
    run_attempt: Callable[[Attempt], AttemptOutcome[T]],
) -> AttemptOutcome[T]:
    """Run attempts in order and return the first successful outcome.

    Raises:
        TopoPrintError: The last attempt's error once every attempt failed, or
            the first fatal error
    """
    if not attempts:
        raise ValueError("Resolution ladder is empty")

    last: Optional[AttemptOutcome[T]] = None
    for number, attempt in enumerate(attempts, start=1):
        logger.info(
            "Running attempt",
            attempt=number,
            of=len(attempts),
            zoom=attempt.zoom,
            max_segments=attempt.max_segments,
        )
        outcome = run_attempt(attempt)
        if outcome.ok:
            return outcome

        last = outcome
        logger.warning(
            "Attempt failed",
            attempt=number,
            zoom=outcome.attempt.zoom,
            max_segments=outcome.attempt.max_segments,
            kind=outcome.kind.value if outcome.kind else None,
            error=str(outcome.error),
        )
        if outcome.kind is not None and not outcome.kind.retryable:
            break

    raise last.error
