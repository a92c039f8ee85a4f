"""Size-constrained document assembly.

The assembler knows nothing about the document format. It calls ``build``
with a resolution scale, looks at how many bytes came back, and while the
result is over budget it retries at 85% of the previous scale: at most six
retries, never below 0.25. This is a monotonic control loop, not a search for
the largest scale that fits; the first candidate under budget wins.

The three constants are tunable; nothing else depends on their exact values.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

log = logging.getLogger("pixeltools.assembler")

__all__ = [
    "AssemblyOutcome",
    "AssemblyResult",
    "assemble",
    "assemble_async",
    "describe_outcome",
    "SHRINK_FACTOR",
    "MAX_ATTEMPTS",
    "MIN_SCALE",
]

SHRINK_FACTOR = 0.85
MAX_ATTEMPTS = 6
MIN_SCALE = 0.25


class AssemblyOutcome(Enum):
    WITHIN_BUDGET = "within_budget"        # first build fit (or no budget)
    SHRUNK_TO_FIT = "shrunk_to_fit"        # fit after one or more shrink attempts
    BUDGET_EXHAUSTED = "budget_exhausted"  # still too big with raster content at the floor/attempt limit
    INCOMPRESSIBLE = "incompressible"      # too big, and nothing rasterized to shrink


@dataclass(frozen=True)
class AssemblyResult:
    data: bytes
    scale: float
    attempts: int
    builds: int
    outcome: AssemblyOutcome
    budget: int = 0

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def met_budget(self) -> bool:
        return self.outcome in (AssemblyOutcome.WITHIN_BUDGET, AssemblyOutcome.SHRUNK_TO_FIT)


def _should_shrink(size: int, budget: int, has_raster_content: bool) -> bool:
    return budget > 0 and size > budget and has_raster_content


def _next_scale(scale: float) -> float:
    return max(MIN_SCALE, scale * SHRINK_FACTOR)


def _classify(size: int, budget: int, attempts: int, has_raster_content: bool) -> AssemblyOutcome:
    if budget <= 0 or size <= budget:
        return AssemblyOutcome.SHRUNK_TO_FIT if attempts > 0 else AssemblyOutcome.WITHIN_BUDGET
    if not has_raster_content:
        return AssemblyOutcome.INCOMPRESSIBLE
    return AssemblyOutcome.BUDGET_EXHAUSTED


def _finish(data: bytes, scale: float, attempts: int, budget: int, has_raster_content: bool) -> AssemblyResult:
    outcome = _classify(len(data), budget, attempts, has_raster_content)
    log.info(
        "assemble: %s size=%d budget=%d scale=%.4f attempts=%d",
        outcome.value, len(data), budget, scale, attempts,
    )
    return AssemblyResult(
        data=data,
        scale=scale,
        attempts=attempts,
        builds=attempts + 1,
        outcome=outcome,
        budget=budget,
    )


def assemble(
    build: Callable[[float], bytes],
    initial_scale: float = 1.0,
    budget: int = 0,
    has_raster_content: bool = True,
) -> AssemblyResult:
    """Build once, then shrink-and-rebuild until ``budget`` bytes is met or attempts run out.

    Args:
        build: Produces the serialized document for a scale factor. Its
            exceptions propagate unchanged.
        initial_scale: First scale tried.
        budget: Byte limit; 0 means unconstrained.
        has_raster_content: False when every page is vector/copied content,
            in which case shrinking is pointless and never attempted.
    """
    budget = max(0, int(budget))
    scale = float(initial_scale)
    data = build(scale)
    log.debug("assemble: build scale=%.4f -> %d bytes", scale, len(data))
    attempts = 0
    if _should_shrink(len(data), budget, has_raster_content):
        while attempts < MAX_ATTEMPTS and len(data) > budget and scale > MIN_SCALE:
            scale = _next_scale(scale)
            data = build(scale)
            attempts += 1
            log.debug("assemble: retry %d scale=%.4f -> %d bytes", attempts, scale, len(data))
    return _finish(data, scale, attempts, budget, has_raster_content)


async def assemble_async(
    build: Callable[[float], Awaitable[bytes]],
    initial_scale: float = 1.0,
    budget: int = 0,
    has_raster_content: bool = True,
) -> AssemblyResult:
    """:func:`assemble` for an async ``build``; awaits one build at a time."""
    budget = max(0, int(budget))
    scale = float(initial_scale)
    data = await build(scale)
    log.debug("assemble: build scale=%.4f -> %d bytes", scale, len(data))
    attempts = 0
    if _should_shrink(len(data), budget, has_raster_content):
        while attempts < MAX_ATTEMPTS and len(data) > budget and scale > MIN_SCALE:
            scale = _next_scale(scale)
            data = await build(scale)
            attempts += 1
            log.debug("assemble: retry %d scale=%.4f -> %d bytes", attempts, scale, len(data))
    return _finish(data, scale, attempts, budget, has_raster_content)


def describe_outcome(result: AssemblyResult) -> str:
    """One-line note for the user about how the budget went."""
    if result.outcome is AssemblyOutcome.INCOMPRESSIBLE:
        return "The document only holds copied pages, which cannot be shrunk; try removing content."
    if result.outcome is AssemblyOutcome.BUDGET_EXHAUSTED:
        return (
            f"Resolution was lowered to {result.scale * 100:.0f}% but the file is still "
            f"{result.size / 1024:.1f} KB; consider re-encoding or splitting it."
        )
    if result.outcome is AssemblyOutcome.SHRUNK_TO_FIT:
        return f"Resolution adjusted to {result.scale * 100:.0f}% to meet the size limit."
    return f"Done, file size about {result.size / 1024:.1f} KB."
