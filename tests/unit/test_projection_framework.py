"""
PROJECTION FRAMEWORK TESTS
==========================

Registry, guard and executor with in-memory fakes (no database):
- registry is closed and immutable
- guard returns tagged results, never raises for policy blocks
- executor audits exactly once, and only after every check passed
"""
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import pytest

from control_plane import NOT_PAUSED, PauseState
from exceptions import InvalidGovernanceInput, ProjectionBlocked, UnknownProjection
from projections.contract import ProjectionContext, ProjectionContract
from projections.definitions import PROJECTION_DEFINITIONS
from projections.executor import ProjectionExecutor
from projections.guard import ProjectionGuardErrorCode, ProjectionGuardService
from projections.hashing import fingerprint
from projections.registry import ProjectionRegistry
from projections.types import ProjectionInput, ProjectionName, SourceModelKey, TimeRange

NOW = datetime(2026, 2, 1, 12, 0, 0, tzinfo=timezone.utc)


class EchoProjection(ProjectionContract):
    """Returns its input; rejects params={"bad": True}"""

    name = ProjectionName.PRESSURE_SERIES
    sources = (SourceModelKey.PRESSURE_STATE, SourceModelKey.SESSION)

    def __init__(self):
        self.runs = 0

    def validate(self, input):
        if input.params.get("bad"):
            raise InvalidGovernanceInput("bad params")

    async def run(self, ctx, input):
        self.runs += 1
        return {"userId": input.user_id}


class ExplodingProjection(EchoProjection):
    name = ProjectionName.CONFIDENCE_SERIES

    async def run(self, ctx, input):
        raise RuntimeError("read failed")


class _Recorder:
    def __init__(self):
        self.audits = []

    @asynccontextmanager
    async def __call__(self, user_id):
        async def emit(access):
            self.audits.append(access)

        yield ProjectionContext(db=None, now=lambda: NOW), emit


def _pause(state):
    async def check(user_id):
        return state
    return check


def _owner(problem=None):
    async def check(input):
        return problem
    return check


def _executor(pause=NOT_PAUSED, ownership_problem=None, definitions=None):
    recorder = _Recorder()
    projection = EchoProjection()
    registry = ProjectionRegistry(definitions or (projection, ExplodingProjection()))
    guard = ProjectionGuardService(pause_check=_pause(pause), ownership_check=_owner(ownership_problem))
    return ProjectionExecutor(registry, guard, recorder), recorder, projection


# =============================================================================
# REGISTRY
# =============================================================================

class TestProjectionRegistry:

    def test_builtin_definitions_register(self):
        registry = ProjectionRegistry(PROJECTION_DEFINITIONS)
        assert len(registry) == len(ProjectionName)
        assert set(registry.list()) == set(ProjectionName)

    def test_get_by_string_or_enum(self):
        registry = ProjectionRegistry(PROJECTION_DEFINITIONS)
        assert registry.get("pressure.series") is registry.get(ProjectionName.PRESSURE_SERIES)

    def test_unknown_name_raises(self):
        registry = ProjectionRegistry(PROJECTION_DEFINITIONS)
        with pytest.raises(UnknownProjection) as exc_info:
            registry.get("goals.tree")
        assert exc_info.value.code == "UNKNOWN_PROJECTION"

    def test_known_name_not_registered_raises(self):
        registry = ProjectionRegistry([EchoProjection()])
        with pytest.raises(UnknownProjection):
            registry.get(ProjectionName.SESSION_TIMELINE)

    def test_duplicate_name_rejected(self):
        with pytest.raises(ValueError):
            ProjectionRegistry([EchoProjection(), EchoProjection()])

    def test_unknown_source_rejected(self):
        class Rogue(EchoProjection):
            sources = ("Goal",)

        with pytest.raises(ValueError):
            ProjectionRegistry([Rogue()])

    def test_contains(self):
        registry = ProjectionRegistry([EchoProjection()])
        assert "pressure.series" in registry
        assert "session.timeline" not in registry
        assert "nonsense" not in registry

    def test_mapping_is_read_only(self):
        registry = ProjectionRegistry([EchoProjection()])
        with pytest.raises(TypeError):
            registry._definitions[ProjectionName.SESSION_TIMELINE] = EchoProjection()


# =============================================================================
# GUARD
# =============================================================================

@pytest.mark.asyncio(loop_scope="function")
class TestProjectionGuard:

    async def test_ok(self):
        guard = ProjectionGuardService(pause_check=_pause(NOT_PAUSED), ownership_check=_owner())
        result = await guard.check(EchoProjection(), ProjectionInput(user_id="u1"))
        assert result.ok
        assert result.code is None

    async def test_no_extensions_means_structure_only(self):
        result = await ProjectionGuardService().check(EchoProjection(), ProjectionInput(user_id="u1"))
        assert result.ok

    @pytest.mark.parametrize("input", [
        ProjectionInput(user_id=""),
        ProjectionInput(user_id=None),
        ProjectionInput(user_id=42),
        ProjectionInput(user_id="u1", session_id=""),
        ProjectionInput(user_id="u1", model_set_id=7),
        ProjectionInput(user_id="u1", time_range=TimeRange("2026-02-01", NOW)),
        ProjectionInput(user_id="u1", time_range=TimeRange(NOW, NOW - timedelta(seconds=1))),
    ])
    async def test_invalid_structure(self, input):
        result = await ProjectionGuardService().check(EchoProjection(), input)
        assert not result.ok
        assert result.code == ProjectionGuardErrorCode.INVALID_INPUT

    async def test_equal_bounds_allowed(self):
        input = ProjectionInput(user_id="u1", time_range=TimeRange(NOW, NOW))
        assert (await ProjectionGuardService().check(EchoProjection(), input)).ok

    async def test_paused_uses_pause_reason(self):
        guard = ProjectionGuardService(pause_check=_pause(PauseState(True, "maintenance")))
        result = await guard.check(EchoProjection(), ProjectionInput(user_id="u1"))
        assert result.code == ProjectionGuardErrorCode.PAUSED
        assert result.message == "maintenance"

    async def test_unauthorized(self):
        guard = ProjectionGuardService(
            pause_check=_pause(NOT_PAUSED),
            ownership_check=_owner("Session does not belong to user."),
        )
        result = await guard.check(EchoProjection(), ProjectionInput(user_id="u1", session_id="s1"))
        assert result.code == ProjectionGuardErrorCode.UNAUTHORIZED
        assert result.message == "Session does not belong to user."

    async def test_structure_checked_before_pause(self):
        """Invalid input is reported even while paused; pause_check never runs"""
        calls = []

        async def pause_check(user_id):
            calls.append(user_id)
            return PauseState(True, "paused")

        guard = ProjectionGuardService(pause_check=pause_check)
        result = await guard.check(EchoProjection(), ProjectionInput(user_id=""))
        assert result.code == ProjectionGuardErrorCode.INVALID_INPUT
        assert calls == []

    async def test_pause_checked_before_ownership(self):
        guard = ProjectionGuardService(
            pause_check=_pause(PauseState(True, "paused")),
            ownership_check=_owner("not yours"),
        )
        result = await guard.check(EchoProjection(), ProjectionInput(user_id="u1"))
        assert result.code == ProjectionGuardErrorCode.PAUSED


# =============================================================================
# EXECUTOR
# =============================================================================

@pytest.mark.asyncio(loop_scope="function")
class TestProjectionExecutor:

    async def test_success_audits_once(self):
        executor, recorder, projection = _executor()
        input = ProjectionInput(user_id="u1", session_id="s1")

        output = await executor.execute("pressure.series", input)

        assert output == {"userId": "u1"}
        assert projection.runs == 1
        assert len(recorder.audits) == 1
        access = recorder.audits[0]
        assert access.user_id == "u1"
        assert access.session_id == "s1"
        assert access.projection == "pressure.series"
        assert access.inputs_hash == fingerprint(input)
        assert list(access.sources) == ["PressureState", "Session"]
        assert access.occurred_at == NOW

    async def test_unknown_projection_no_audit(self):
        executor, recorder, _ = _executor()
        with pytest.raises(UnknownProjection):
            await executor.execute("goals.tree", ProjectionInput(user_id="u1"))
        assert recorder.audits == []

    async def test_guard_block_raises_coded_error(self):
        executor, recorder, projection = _executor(pause=PauseState(True, "maintenance"))

        with pytest.raises(ProjectionBlocked) as exc_info:
            await executor.execute(ProjectionName.PRESSURE_SERIES, ProjectionInput(user_id="u1"))

        assert exc_info.value.code == "PAUSED"
        assert str(exc_info.value) == "PAUSED: maintenance"
        assert exc_info.value.details["projection"] == "pressure.series"
        assert recorder.audits == []
        assert projection.runs == 0

    async def test_unauthorized_no_audit(self):
        executor, recorder, _ = _executor(ownership_problem="ModelSet does not belong to user.")
        with pytest.raises(ProjectionBlocked) as exc_info:
            await executor.execute("pressure.series", ProjectionInput(user_id="u1", model_set_id="m1"))
        assert exc_info.value.code == "UNAUTHORIZED"
        assert recorder.audits == []

    async def test_validate_failure_no_run_no_audit(self):
        executor, recorder, projection = _executor()
        with pytest.raises(InvalidGovernanceInput):
            await executor.execute("pressure.series", ProjectionInput(user_id="u1", params={"bad": True}))
        assert projection.runs == 0
        assert recorder.audits == []

    async def test_run_failure_no_audit(self):
        executor, recorder, _ = _executor()
        with pytest.raises(RuntimeError):
            await executor.execute("confidence.series", ProjectionInput(user_id="u1"))
        assert recorder.audits == []

    async def test_repeat_execution_same_hash(self):
        executor, recorder, _ = _executor()
        input = ProjectionInput(user_id="u1")
        await executor.execute("pressure.series", input)
        await executor.execute("pressure.series", input)
        assert len(recorder.audits) == 2
        assert recorder.audits[0].inputs_hash == recorder.audits[1].inputs_hash

    async def test_context_carries_no_audit_writer(self):
        """
        SCENARIO: A projection tries to write its own access audit from run()
        EXPECTED: The context has no writer; the run fails and nothing is audited
        """
        class SelfAuditing(EchoProjection):
            async def run(self, ctx, input):
                await ctx.audit(None)

        executor, recorder, _ = _executor(definitions=(SelfAuditing(),))

        with pytest.raises(AttributeError):
            await executor.execute("pressure.series", ProjectionInput(user_id="u1"))

        assert not hasattr(ProjectionContext(db=None, now=lambda: NOW), "audit")
        assert recorder.audits == []
