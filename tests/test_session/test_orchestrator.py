"""Tests for the session orchestrator."""

import asyncio
import json
from dataclasses import dataclass, field

import pytest

from autopilot.approval.coordinator import ApprovalCoordinator
from autopilot.config import AutopilotConfig, ModeRules, PromptContext, SessionMode, Settings, StopConditions
from autopilot.detection.models import ActionType
from autopilot.exceptions import ProcessSpawnError
from autopilot.runner.process import ProcessRunner
from autopilot.session.models import StopReason, Task, TaskPriority, TaskStatus
from autopilot.session.observer import DashboardState
from autopilot.session.orchestrator import SessionOrchestrator


@dataclass
class Script:
    """Scripted agent run: output chunks and an exit code."""

    chunks: list[str] = field(default_factory=list)
    exit_code: int = 0
    spawn_error: bool = False


class FakeHandle:
    """Stands in for ProcessHandle."""

    def __init__(self, script: Script):
        self.script = script
        self.closed = False
        self.terminated = False

    async def chunks(self):
        for chunk in self.script.chunks:
            if self.closed:
                return
            await asyncio.sleep(0)
            yield chunk

    async def wait(self) -> int:
        return self.script.exit_code

    def close(self) -> None:
        self.closed = True

    async def terminate(self, grace_seconds: float = 5.0) -> int:
        self.close()
        self.terminated = True
        return -15


class FakeRunner:
    """Hands out scripted handles in order."""

    def __init__(self, scripts: list[Script]):
        self.scripts = list(scripts)
        self.calls: list[tuple[str, list[str]]] = []
        self.handles: list[FakeHandle] = []

    async def spawn(self, command, args, cwd=None, env=None):
        self.calls.append((command, list(args)))
        script = self.scripts.pop(0)
        if script.spawn_error:
            raise ProcessSpawnError(command, "No such file or directory")
        handle = FakeHandle(script)
        self.handles.append(handle)
        return handle


class FakeNotifier:
    """Records notifications."""

    def __init__(self):
        self.events: list[tuple[str, dict]] = []

    async def send(self, event_kind, payload):
        self.events.append((event_kind, payload))

    @property
    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.events]


def make_tasks(count: int) -> list[Task]:
    return [Task(id=f"task-{i}", description=f"Task {i}") for i in range(1, count + 1)]


@pytest.fixture
def notifier():
    return FakeNotifier()


def build(settings, console, notifier, scripts, config=None, mode=None, **kwargs):
    runner = FakeRunner(scripts)
    orchestrator = SessionOrchestrator(
        settings,
        config or AutopilotConfig(),
        console,
        mode=mode,
        runner=runner,
        notifier=notifier,
        **kwargs,
    )
    return orchestrator, runner


class TestBuildPrompt:
    """Test prompt composition."""

    def test_all_sections(self, test_settings, console, notifier):
        """Test sections appear in order separated by blank lines."""
        config = AutopilotConfig(
            context=PromptContext(
                project_standards="Use type hints",
                current_focus="Auth module",
                error_handling="Stop on failing tests",
            )
        )
        orchestrator, _ = build(test_settings, console, notifier, [], config=config)

        prompt = orchestrator.build_prompt("Add login", context="See issue 12")

        assert prompt == (
            "[Project Standards]\nUse type hints\n\n"
            "[Current Focus]\nAuth module\n\n"
            "[Task Context]\nSee issue 12\n\n"
            "[Error Handling]\nStop on failing tests\n\n"
            "[Task]\nAdd login"
        )

    def test_task_only(self, test_settings, console, notifier):
        """Test empty sections are left out."""
        orchestrator, _ = build(test_settings, console, notifier, [])

        assert orchestrator.build_prompt("Add login") == "[Task]\nAdd login"


class TestRunQueue:
    """Test queue execution."""

    @pytest.mark.asyncio
    async def test_runs_in_priority_order(self, test_settings, console, notifier):
        """Test high priority tasks run first and all complete."""
        tasks = [
            Task(id="low", description="low", priority=TaskPriority.LOW),
            Task(id="high", description="high", prompt="Do the urgent thing", priority=TaskPriority.HIGH),
        ]
        orchestrator, runner = build(test_settings, console, notifier, [Script(), Script()])

        result = await orchestrator.run_queue(tasks)

        assert runner.calls[0][0] == "fake-agent"
        assert runner.calls[0][1][-1] == "[Task]\nDo the urgent thing"
        assert runner.calls[1][1][-1] == "[Task]\nlow"
        assert result.stats.tasks_completed == 2
        assert all(task.status == TaskStatus.COMPLETE for task in result.tasks)
        assert result.stop_reason is None
        assert notifier.kinds[0] == "session_start"
        assert notifier.kinds[-1] == "session_complete"

    @pytest.mark.asyncio
    async def test_error_threshold_abandons_queue(self, test_settings, console, notifier):
        """Test two failures with error_count=2 leave the third task pending."""
        config = AutopilotConfig(stop_on=StopConditions(error_count=2))
        orchestrator, runner = build(
            test_settings,
            console,
            notifier,
            [Script(exit_code=1), Script(exit_code=2), Script()],
            config=config,
        )

        result = await orchestrator.run_queue(make_tasks(3))

        assert len(runner.calls) == 2
        assert result.stats.tasks_failed == 2
        assert result.stats.errors == 2
        assert [task.status for task in result.tasks] == [TaskStatus.FAILED, TaskStatus.FAILED, TaskStatus.PENDING]
        assert result.tasks[0].error == "agent exited with code 1"
        assert result.stop_reason == StopReason.ERROR_THRESHOLD
        assert result.stopped_early is True

    @pytest.mark.asyncio
    async def test_spawn_error_counts_as_failure(self, test_settings, console, notifier):
        """Test an agent that cannot start fails its task."""
        orchestrator, _ = build(test_settings, console, notifier, [Script(spawn_error=True), Script()])

        result = await orchestrator.run_queue(make_tasks(2))

        assert result.tasks[0].status == TaskStatus.FAILED
        assert "Failed to start" in result.tasks[0].error
        assert result.tasks[1].status == TaskStatus.COMPLETE
        assert result.stats.errors == 1
        assert "task_failed" in notifier.kinds

    @pytest.mark.asyncio
    async def test_accepted_file_actions_counted(self, test_settings, console, notifier):
        """Test accepted file actions count as approved and changed."""
        script = Script(chunks=["Planning the work...\n", "Creating file: src/new.py\n", "Editing src/app.py\n"])
        orchestrator, _ = build(test_settings, console, notifier, [script])

        result = await orchestrator.run_queue(make_tasks(1))

        assert result.stats.actions_approved == 2
        assert result.stats.files_changed == 2
        assert result.insights.total_actions == 2
        assert result.insights.by_type == {"file_create": 1, "file_edit": 1}

    @pytest.mark.asyncio
    async def test_ansi_codes_stripped(self, test_settings, console, notifier):
        """Test colored output is classified like plain output."""
        script = Script(chunks=["\x1b[32mCreating file: src/new.py\x1b[0m\n"])
        orchestrator, _ = build(test_settings, console, notifier, [script])

        result = await orchestrator.run_queue(make_tasks(1))

        assert result.insights.most_edited[0][0] == "src/new.py"

    @pytest.mark.asyncio
    async def test_quick_confirm_counts_approved(self, test_settings, console, notifier):
        """Test quick confirmations are approved after the grace period."""
        config = AutopilotConfig(
            assisted=ModeRules(quick_confirm=[ActionType.TERMINAL_COMMAND], timeout_seconds=0.0),
        )
        orchestrator, _ = build(
            test_settings,
            console,
            notifier,
            [Script(chunks=["Running command: ls -la\n"])],
            config=config,
            mode=SessionMode.ASSISTED,
        )

        result = await orchestrator.run_queue(make_tasks(1))

        assert result.stats.actions_approved == 1
        assert result.stats.files_changed == 0

    @pytest.mark.asyncio
    async def test_denied_action_notifies_in_autonomous_mode(self, test_settings, console, notifier):
        """Test dangerous commands are denied and reported."""
        orchestrator, _ = build(
            test_settings,
            console,
            notifier,
            [Script(chunks=["rm -rf /important\n"])],
            mode=SessionMode.AUTONOMOUS,
        )

        result = await orchestrator.run_queue(make_tasks(1))

        assert result.stats.actions_denied == 1
        assert result.stats.tasks_completed == 1
        assert "action_denied" in notifier.kinds

    @pytest.mark.asyncio
    async def test_unknown_action_stops_session(self, test_settings, console, notifier):
        """Test an unlisted action in autonomous mode stops everything."""
        script = Script(chunks=["npm install lodash\n", "Creating file: late.py\n"])
        orchestrator, runner = build(
            test_settings,
            console,
            notifier,
            [script, Script()],
            mode=SessionMode.AUTONOMOUS,
        )

        result = await orchestrator.run_queue(make_tasks(2))

        assert result.stop_reason == StopReason.UNKNOWN_ACTION
        assert runner.handles[0].terminated is True
        assert len(runner.calls) == 1
        assert result.tasks[0].status == TaskStatus.FAILED
        assert result.tasks[1].status == TaskStatus.PENDING
        assert result.stats.tasks_failed == 1
        assert result.stats.errors == 0
        assert result.stats.actions_denied == 1
        assert result.stats.actions_approved == 0

    @pytest.mark.asyncio
    async def test_paused_action_approved_by_observer(self, test_settings, console, notifier):
        """Test a held action waits for an approve control message."""
        observer = DashboardState()
        orchestrator, _ = build(
            test_settings,
            console,
            notifier,
            [Script(chunks=["Deleting file: build/old.txt\n"])],
            mode=SessionMode.AUTONOMOUS,
            observer=observer,
        )

        async def approve_when_held():
            while not orchestrator.coordinator.pending:
                await asyncio.sleep(0.01)
            observer.handle_message({"type": "approve", "actionId": orchestrator.coordinator.pending[0].id})

        approver = asyncio.create_task(approve_when_held())
        result = await asyncio.wait_for(orchestrator.run_queue(make_tasks(1)), timeout=5.0)
        await approver

        assert result.stats.actions_approved == 1
        assert result.stats.files_changed == 1
        assert "approval_requested" in notifier.kinds
        assert observer.actions[-1]["status"] == "approve"

    @pytest.mark.asyncio
    async def test_paused_action_times_out_to_deny(self, test_settings, console, notifier):
        """Test an unanswered hold is denied."""
        orchestrator, _ = build(
            test_settings,
            console,
            notifier,
            [Script(chunks=["Deleting file: build/old.txt\n"])],
            mode=SessionMode.AUTONOMOUS,
            coordinator=ApprovalCoordinator(timeout=0.01),
        )

        result = await orchestrator.run_queue(make_tasks(1))

        assert result.stats.actions_denied == 1
        assert result.stats.actions_approved == 0
        assert result.stats.tasks_completed == 1

    @pytest.mark.asyncio
    async def test_pause_holds_at_task_boundary(self, test_settings, console, notifier):
        """Test a paused session starts no task until resumed."""
        orchestrator, runner = build(test_settings, console, notifier, [Script()])
        orchestrator.pause()

        session = asyncio.create_task(orchestrator.run_queue(make_tasks(1)))
        await asyncio.sleep(0.05)
        assert runner.calls == []

        orchestrator.resume()
        result = await asyncio.wait_for(session, timeout=5.0)

        assert result.stats.tasks_completed == 1

    @pytest.mark.asyncio
    async def test_stop_while_paused(self, test_settings, console, notifier):
        """Test stopping a paused session leaves its tasks pending."""
        orchestrator, runner = build(test_settings, console, notifier, [Script()])
        orchestrator.pause()

        session = asyncio.create_task(orchestrator.run_queue(make_tasks(1)))
        await asyncio.sleep(0.01)
        orchestrator.stop()
        result = await asyncio.wait_for(session, timeout=5.0)

        assert runner.calls == []
        assert result.stop_reason == StopReason.STOPPED
        assert result.tasks[0].status == TaskStatus.PENDING

    @pytest.mark.asyncio
    async def test_final_state_published(self, test_settings, console, notifier):
        """Test the observer sees the finished session."""
        observer = DashboardState()
        orchestrator, _ = build(test_settings, console, notifier, [Script()], observer=observer)

        await orchestrator.run_queue(make_tasks(1))

        assert observer.session_complete is True
        assert observer.stats["tasks_completed"] == 1

    @pytest.mark.asyncio
    async def test_insights_published_after_each_task(self, test_settings, console, notifier):
        """Test observers get fresh insights between tasks, not only at the end."""
        observer = DashboardState()
        messages = observer.subscribe()
        scripts = [Script(chunks=["Creating file: a.py\n"]), Script(chunks=["Editing a.py\n"])]
        orchestrator, _ = build(test_settings, console, notifier, scripts, observer=observer)

        await orchestrator.run_queue(make_tasks(2))

        totals = []
        while not messages.empty():
            message = messages.get_nowait()
            if message["type"] == "insights":
                totals.append(message["data"]["total_actions"])
        assert totals == [1, 2]

    @pytest.mark.asyncio
    async def test_held_action_blocks_later_output(self, test_settings, console, notifier):
        """Test output after a held action is not processed until the verdict."""
        observer = DashboardState()
        script = Script(chunks=["Deleting file: build/old.txt\n", "Creating file: src/next.py\n"])
        orchestrator, _ = build(
            test_settings,
            console,
            notifier,
            [script],
            mode=SessionMode.AUTONOMOUS,
            observer=observer,
        )

        async def approve_after_checking():
            while not orchestrator.coordinator.pending:
                await asyncio.sleep(0.01)
            await asyncio.sleep(0.05)
            held = (
                [entry["target"] for entry in observer.actions],
                orchestrator.stats.actions_approved,
                len(orchestrator.history),
            )
            observer.handle_message({"type": "approve", "actionId": orchestrator.coordinator.pending[0].id})
            return held

        approver = asyncio.create_task(approve_after_checking())
        result = await asyncio.wait_for(orchestrator.run_queue(make_tasks(1)), timeout=5.0)

        assert await approver == (["build/old.txt"], 0, 1)
        assert [entry["target"] for entry in observer.actions] == ["build/old.txt", "src/next.py"]
        assert result.stats.actions_approved == 2

    @pytest.mark.asyncio
    async def test_stop_terminates_agent_with_closed_output(self, temp_dir, console, notifier):
        """Test stop ends an agent that closed its pipes but keeps running."""
        settings = Settings(
            _env_file=None,
            autopilot_working_dir=temp_dir,
            agent_command="sh",
            agent_args=["-c", "exec >&- 2>&-; sleep 5"],
            terminate_grace_seconds=1.0,
        )
        orchestrator = SessionOrchestrator(
            settings,
            AutopilotConfig(),
            console,
            runner=ProcessRunner(),
            notifier=notifier,
        )
        loop = asyncio.get_running_loop()

        session = asyncio.create_task(orchestrator.run_queue(make_tasks(2)))
        await asyncio.sleep(0.5)
        stopped_at = loop.time()
        orchestrator.stop()
        result = await asyncio.wait_for(session, timeout=4.0)

        assert loop.time() - stopped_at < 3.0
        assert [task.status for task in result.tasks] == [TaskStatus.FAILED, TaskStatus.PENDING]
        assert result.tasks[0].error == "session stopped: stopped"
        assert result.stats.errors == 0
        assert result.stop_reason == StopReason.STOPPED

    @pytest.mark.asyncio
    async def test_summary_written(self, test_settings, console, notifier, temp_dir):
        """Test the session result is saved as JSON when a path is given."""
        summary_path = temp_dir / "logs" / "summary-1.json"
        orchestrator, _ = build(test_settings, console, notifier, [Script()], summary_path=summary_path)

        await orchestrator.run_queue(make_tasks(1))

        summary = json.loads(summary_path.read_text(encoding="utf-8"))
        assert summary["stats"]["tasks_completed"] == 1
        assert summary["tasks"][0]["status"] == "complete"
        assert summary["stop_reason"] is None


class TestRunSingle:
    """Test single prompt sessions."""

    @pytest.mark.asyncio
    async def test_returns_exit_code(self, test_settings, console, notifier):
        """Test the agent's exit code is returned."""
        orchestrator, runner = build(test_settings, console, notifier, [Script(exit_code=4)])

        code = await orchestrator.run_single("Fix the build", context="CI is red")

        assert code == 4
        assert runner.calls[0][1][-1] == "[Task Context]\nCI is red\n\n[Task]\nFix the build"
        assert orchestrator.result.stats.tasks_failed == 1

    @pytest.mark.asyncio
    async def test_spawn_error_returns_one(self, test_settings, console, notifier):
        """Test an agent that cannot start yields exit code 1."""
        orchestrator, _ = build(test_settings, console, notifier, [Script(spawn_error=True)])

        assert await orchestrator.run_single("Anything") == 1
