"""Tests for the shrink-until-it-fits loop, driven by fake builders."""

import asyncio

import pytest

from assembler import (
    MAX_ATTEMPTS,
    MIN_SCALE,
    SHRINK_FACTOR,
    AssemblyOutcome,
    assemble,
    assemble_async,
    describe_outcome,
)


class FakeBuild:
    """Size proportional to scale, recording every call."""

    def __init__(self, full_size: int = 10000) -> None:
        self.full_size = full_size
        self.scales = []

    def __call__(self, scale: float) -> bytes:
        self.scales.append(scale)
        return b"x" * round(self.full_size * scale)


def test_no_budget_builds_once():
    build = FakeBuild()
    result = assemble(build, 1.0, budget=0)
    assert build.scales == [1.0]
    assert result.outcome is AssemblyOutcome.WITHIN_BUDGET
    assert result.attempts == 0
    assert result.builds == 1
    assert result.size == 10000
    assert result.met_budget


def test_first_build_under_budget():
    result = assemble(FakeBuild(), 1.0, budget=20000)
    assert result.outcome is AssemblyOutcome.WITHIN_BUDGET
    assert result.scale == 1.0


def test_one_shrink_step():
    build = FakeBuild()
    result = assemble(build, 1.0, budget=9000)
    assert build.scales == [1.0, pytest.approx(SHRINK_FACTOR)]
    assert result.outcome is AssemblyOutcome.SHRUNK_TO_FIT
    assert result.attempts == 1
    assert result.size == 8500


def test_shrinks_until_it_fits():
    # sizes: 10000, 8500, 7225, 6141, 5220, 4437, 3771
    build = FakeBuild()
    result = assemble(build, 1.0, budget=4000)
    assert result.outcome is AssemblyOutcome.SHRUNK_TO_FIT
    assert result.attempts == 6
    assert result.builds == len(build.scales) == 7
    assert result.scale == pytest.approx(SHRINK_FACTOR ** 6)
    assert result.size == 3771
    assert result.size <= 4000


def test_scales_never_increase():
    build = FakeBuild()
    assemble(build, 2.0, budget=1)
    assert all(b <= a for a, b in zip(build.scales, build.scales[1:]))


def test_gives_up_after_max_attempts():
    build = FakeBuild()
    result = assemble(build, 1.0, budget=1)
    assert result.attempts == MAX_ATTEMPTS
    assert len(build.scales) == MAX_ATTEMPTS + 1
    assert result.outcome is AssemblyOutcome.BUDGET_EXHAUSTED
    assert not result.met_budget
    assert result.scale == pytest.approx(SHRINK_FACTOR ** MAX_ATTEMPTS)


def test_stops_at_min_scale():
    build = FakeBuild()
    result = assemble(build, 0.3, budget=1)
    # 0.3 -> 0.255 -> 0.25 (floor), then no further attempts
    assert build.scales == [0.3, pytest.approx(0.255), MIN_SCALE]
    assert result.attempts == 2
    assert result.scale == MIN_SCALE
    assert result.outcome is AssemblyOutcome.BUDGET_EXHAUSTED


def test_initial_scale_at_floor_never_retries():
    build = FakeBuild()
    result = assemble(build, MIN_SCALE, budget=1)
    assert len(build.scales) == 1
    assert result.outcome is AssemblyOutcome.BUDGET_EXHAUSTED


def test_no_raster_content_is_incompressible():
    build = FakeBuild()
    result = assemble(build, 1.0, budget=100, has_raster_content=False)
    assert build.scales == [1.0]
    assert result.outcome is AssemblyOutcome.INCOMPRESSIBLE


def test_build_errors_propagate():
    def broken(scale):
        raise RuntimeError("encoder exploded")

    with pytest.raises(RuntimeError, match="exploded"):
        assemble(broken, 1.0, budget=10)


def test_async_matches_sync():
    build = FakeBuild()

    async def abuild(scale: float) -> bytes:
        await asyncio.sleep(0)
        return build(scale)

    result = asyncio.run(assemble_async(abuild, 1.0, budget=4000))
    expected = assemble(FakeBuild(), 1.0, budget=4000)
    assert result.outcome is expected.outcome
    assert result.attempts == expected.attempts
    assert result.data == expected.data


def test_describe_outcome_messages():
    assert "KB" in describe_outcome(assemble(FakeBuild(), 1.0))
    assert "85%" in describe_outcome(assemble(FakeBuild(), 1.0, budget=9000))
    assert "still" in describe_outcome(assemble(FakeBuild(), 1.0, budget=1))
    assert "cannot be shrunk" in describe_outcome(
        assemble(FakeBuild(), 1.0, budget=1, has_raster_content=False)
    )
