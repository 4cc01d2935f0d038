"""Session orchestration for the autopilot supervisor.

The SessionOrchestrator runs a queue of tasks through the agent, one process
at a time. Every chunk of agent output flows through the same pipeline:

1. ANSI codes are stripped and the chunk is echoed to observers
2. The classifier turns the chunk into at most one action
3. The risk scorer assesses the action against the session history
4. The policy engine decides accept / deny / pause / quick_confirm
5. The decision is applied (counted, confirmed, or held for a human)

A held action blocks reading of the agent's output until it is resolved, so
the agent stalls on its own pipe while a human decides.
"""

import asyncio
import time
from collections.abc import Coroutine
from datetime import datetime, UTC
from pathlib import Path
from typing import Any

from autopilot.approval.console import ConsoleApprover
from autopilot.approval.coordinator import ApprovalCoordinator, Verdict
from autopilot.config import AutopilotConfig, SessionMode, Settings
from autopilot.detection.classifier import ActionClassifier
from autopilot.detection.history import HistoryStats
from autopilot.detection.models import ActionEvent, RiskAssessment
from autopilot.detection.risk import RiskScorer
from autopilot.exceptions import ProcessSpawnError
from autopilot.logging import AsyncTimer, get_logger
from autopilot.notify import LogNotifier, Notifier
from autopilot.policy.engine import Decision, DecisionOutcome, PolicyEngine
from autopilot.runner.process import ProcessRunner
from autopilot.runner.providers import build_agent_command
from autopilot.session.models import SessionResult, SessionStats, StopReason, Task, TaskStatus
from autopilot.session.observer import ControlCommand, ControlType, DashboardState
from autopilot.session.queue import TaskQueue
from autopilot.ui.console import AutopilotConsole
from autopilot.ui.formatters import strip_ansi, truncate_text

logger = get_logger("autopilot.session.orchestrator")


class SessionOrchestrator:
    """Supervises the agent through a queue of tasks.

    Attributes:
        settings: Process settings (agent command, timeouts)
        config: Session rule configuration
        mode: Session mode
        stats: Counters for this session
        history: Action history shared by classifier and scorer
    """

    def __init__(
        self,
        settings: Settings,
        config: AutopilotConfig,
        console: AutopilotConsole,
        mode: SessionMode | None = None,
        runner: ProcessRunner | None = None,
        coordinator: ApprovalCoordinator | None = None,
        observer: DashboardState | None = None,
        notifier: Notifier | None = None,
        interactive_approvals: bool = False,
        summary_path: Path | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            settings: Process settings
            config: Rule configuration
            console: Console for session output
            mode: Session mode (defaults to the configured mode)
            runner: Process runner (creates one if None)
            coordinator: Approval coordinator (creates one if None)
            observer: Dashboard state (creates one if None)
            notifier: Notification sink (logs only if None)
            interactive_approvals: Also ask on the console for held actions
            summary_path: Where to write the session result as JSON (skipped if None)
        """
        self.settings = settings
        self.config = config
        self.console = console
        self.mode = mode or config.mode
        self.runner = runner or ProcessRunner()
        self.coordinator = coordinator or ApprovalCoordinator(timeout=settings.approval_timeout)
        self.observer = observer or DashboardState()
        self.notifier = notifier or LogNotifier()
        self.approver = ConsoleApprover(self.coordinator, console) if interactive_approvals else None
        self.summary_path = summary_path

        self.history = HistoryStats()
        self.classifier = ActionClassifier(self.history)
        self.scorer = RiskScorer(protected_paths=config.protected_paths)
        self.policy = PolicyEngine(config.rules_for(self.mode), self.mode, config.stop_on)
        self.stats = SessionStats()
        self.result: SessionResult | None = None

        self._resume = asyncio.Event()
        self._resume.set()
        self._stopped = asyncio.Event()
        self._stop_reason: StopReason | None = None
        self._handle = None
        self._background: set[asyncio.Task] = set()
        self._prompts: set[asyncio.Task] = set()

        self.observer.on_control(self.handle_control)
        logger.info(
            "Session orchestrator initialized",
            mode=self.mode.value,
            agent=settings.agent_command,
            error_limit=config.stop_on.error_count,
        )

    @property
    def paused(self) -> bool:
        """Whether the session holds at the next task boundary."""
        return not self._resume.is_set()

    @property
    def stop_reason(self) -> StopReason | None:
        return self._stop_reason

    def build_prompt(self, prompt: str, context: str = "") -> str:
        """Compose the full prompt sent to the agent.

        Configured context sections come first, then the task itself.

        Args:
            prompt: Task prompt
            context: Task specific context

        Returns:
            str: Prompt with all non-empty sections separated by blank lines
        """
        sections = self.config.context
        parts = []
        if sections.project_standards:
            parts.append(f"[Project Standards]\n{sections.project_standards}")
        if sections.current_focus:
            parts.append(f"[Current Focus]\n{sections.current_focus}")
        if context:
            parts.append(f"[Task Context]\n{context}")
        if sections.error_handling:
            parts.append(f"[Error Handling]\n{sections.error_handling}")
        parts.append(f"[Task]\n{prompt}")
        return "\n\n".join(parts)

    async def run_queue(self, tasks: TaskQueue | list[Task]) -> SessionResult:
        """Run every pending task in priority order.

        Args:
            tasks: Task queue, or plain tasks to queue

        Returns:
            SessionResult: Final statistics, insights and task states
        """
        queue = tasks if isinstance(tasks, TaskQueue) else TaskQueue(tasks)
        start = time.perf_counter()
        pending = queue.pending()

        logger.info("Session started", mode=self.mode.value, tasks=len(pending))
        self.observer.update_mode(self.mode.value)
        self.observer.update_queue(queue.tasks)
        self._notify("session_start", {"mode": self.mode.value, "tasks": len(pending)})

        for task in pending:
            await self._wait_if_paused()
            if self._stop_reason:
                break

            async with AsyncTimer("task", logger, task_id=task.id):
                await self._run_task(task)
            self.observer.update_queue(queue.tasks)
            self.observer.update_insights(self.history.insights())

            if self._stop_reason:
                break
            if self.stats.errors >= self.config.stop_on.error_count:
                self._stop_reason = StopReason.ERROR_THRESHOLD
                logger.warning(
                    "Error limit reached, abandoning remaining tasks",
                    errors=self.stats.errors,
                    remaining=len(queue.pending()),
                )
                self.console.warning(f"Stopping after {self.stats.errors} errors")
                break

        self.result = await self._finish(queue.tasks, start)
        return self.result

    async def run_single(self, prompt: str, context: str = "") -> int:
        """Run one ad-hoc prompt as a single task session.

        Args:
            prompt: Task prompt
            context: Task specific context

        Returns:
            int: Agent exit code (1 if the agent could not run to completion)
        """
        task = Task(id="single", description=truncate_text(prompt, 80, "..."), prompt=prompt, context=context)
        start = time.perf_counter()
        self.observer.update_mode(self.mode.value)
        self.observer.update_queue([task])

        async with AsyncTimer("task", logger, task_id=task.id):
            exit_code = await self._run_task(task)

        self.result = await self._finish([task], start)
        return exit_code if exit_code is not None else 1

    def pause(self) -> None:
        """Hold the session at the next task boundary."""
        if self.paused:
            return
        self._resume.clear()
        self.observer.update_paused(True)
        logger.info("Session paused")

    def resume(self) -> None:
        """Continue a paused session."""
        if not self.paused:
            return
        self._resume.set()
        self.observer.update_paused(False)
        logger.info("Session resumed")

    def stop(self, reason: StopReason | str = StopReason.STOPPED) -> None:
        """Stop the session.

        The running agent is terminated, pending approvals are denied and
        tasks that have not started stay pending.

        Args:
            reason: Why the session is stopping
        """
        if self._stop_reason is None:
            self._stop_reason = StopReason(reason)
            logger.warning("Stopping session", reason=self._stop_reason.value)

        self.coordinator.cancel_all()
        # Release the boundary wait, the exit wait and the output stream of the running task
        self._stopped.set()
        self._resume.set()
        if self._handle is not None:
            self._handle.close()

    def handle_control(self, command: ControlCommand) -> None:
        """Apply a control command from an observer.

        Args:
            command: Validated control command
        """
        if command.type == ControlType.PAUSE:
            self.pause()
        elif command.type == ControlType.RESUME:
            self.resume()
        else:
            verdict = Verdict.APPROVE if command.type == ControlType.APPROVE else Verdict.DENY
            if not self.coordinator.resolve(command.action_id, verdict):
                logger.debug("Control verdict for unknown approval", approval_id=command.action_id)

    async def _wait_if_paused(self) -> None:
        if self.paused and not self._stop_reason:
            self.console.info("Session paused, waiting for resume")
            await self._resume.wait()

    async def _run_task(self, task: Task) -> int | None:
        """Run one task to completion.

        Returns:
            int | None: Exit code, or None if the agent never ran to completion
        """
        task.status = TaskStatus.RUNNING
        task.started_at = datetime.now(UTC)
        self.observer.update_task(task)
        self.console.divider(f"Task {task.id}: {truncate_text(task.description, 60, '...')}")
        self._notify("task_start", {"task": task.id, "description": task.description})

        # Step 1: Start the agent
        command, args = build_agent_command(self.settings, self.build_prompt(task.effective_prompt, task.context))
        try:
            handle = await self.runner.spawn(command, args, cwd=self.settings.working_dir)
        except ProcessSpawnError as e:
            logger.error("Could not start agent", task_id=task.id, error=str(e))
            self._fail(task, str(e), count_error=True)
            return None

        # Step 2: Supervise its output
        self._handle = handle
        try:
            async for chunk in handle.chunks():
                await self._process_chunk(chunk)
                if self._stop_reason:
                    break

            exit_code = None if self._stop_reason else await self._wait_unless_stopped(handle)
            if exit_code is None:
                await handle.terminate(self.settings.terminate_grace_seconds)
                self._fail(task, f"session stopped: {self._stop_reason.value}", count_error=False)
                return None
        finally:
            self._handle = None

        # Step 3: Record the outcome
        if exit_code == 0:
            task.status = TaskStatus.COMPLETE
            task.finished_at = datetime.now(UTC)
            self.stats.tasks_completed += 1
            logger.info("Task complete", task_id=task.id)
            self.console.success(f"Task {task.id} complete")
            self.observer.task_completed(task)
            self._notify("task_complete", {"task": task.id, "description": task.description})
        else:
            self._fail(task, f"agent exited with code {exit_code}", count_error=True)

        self.observer.update_stats(self.stats)
        return exit_code

    async def _wait_unless_stopped(self, handle) -> int | None:
        """Wait for the agent to exit, or return None once the session stops.

        An agent can close its output and keep running, so the exit wait has
        to give way to a stop as well.
        """
        exit_wait = asyncio.create_task(handle.wait())
        stop_wait = asyncio.create_task(self._stopped.wait())
        done, _ = await asyncio.wait({exit_wait, stop_wait}, return_when=asyncio.FIRST_COMPLETED)
        stop_wait.cancel()
        if exit_wait in done:
            return exit_wait.result()
        exit_wait.cancel()
        return None

    def _fail(self, task: Task, error: str, count_error: bool) -> None:
        task.status = TaskStatus.FAILED
        task.error = error
        task.finished_at = datetime.now(UTC)
        self.stats.tasks_failed += 1
        if count_error:
            self.stats.errors += 1

        logger.error("Task failed", task_id=task.id, error=error, errors=self.stats.errors)
        self.console.error(f"Task {task.id} failed: {error}")
        self.observer.task_failed(task)
        self.observer.update_stats(self.stats)
        self._notify("task_failed", {"task": task.id, "error": error})

    async def _process_chunk(self, chunk: str) -> None:
        text = strip_ansi(chunk)
        self.console.output(text)
        self.observer.output(text)

        action = self.classifier.detect(text)
        if action is None:
            return

        risk = self.scorer.assess(action, self.history)
        self.history.record_risk(risk)
        decision = self.policy.decide(action, risk)
        logger.info(
            f"Action {decision.outcome.value}: {action.type.value}",
            target=action.target,
            risk=risk.level.value,
            score=f"{risk.score:.2f}",
            reason=decision.reason,
        )
        self.console.action(action, risk, decision)

        await self._apply(action, risk, decision)
        self.observer.update_stats(self.stats)

    async def _apply(self, action: ActionEvent, risk: RiskAssessment, decision: Decision) -> None:
        """Carry out a policy decision."""
        if decision.outcome == DecisionOutcome.ACCEPT:
            self.observer.add_action(action, risk, decision)
            self._approve(action)

        elif decision.outcome == DecisionOutcome.QUICK_CONFIRM:
            self.observer.add_action(action, risk, decision)
            await asyncio.sleep(decision.timeout or 0)
            self.stats.actions_approved += 1

        elif decision.outcome == DecisionOutcome.DENY:
            self.observer.add_action(action, risk, decision)
            self.stats.actions_denied += 1
            if self.mode == SessionMode.AUTONOMOUS:
                self._notify(
                    "action_denied",
                    {"action": action.type.value, "target": action.target, "reason": decision.reason},
                )
            if decision.stop_session:
                self.stop(StopReason.UNKNOWN_ACTION)

        else:
            await self._hold(action, risk, decision)

    async def _hold(self, action: ActionEvent, risk: RiskAssessment, decision: Decision) -> None:
        """Hold an action until a human approves or denies it."""
        approval_id = self.coordinator.register(action, decision.reason)
        self.observer.add_action(action, risk, decision, approval_id=approval_id)
        self._notify(
            "approval_requested",
            {
                "id": approval_id,
                "action": action.type.value,
                "target": action.target,
                "risk": f"{risk.level.value} ({risk.score:.2f})",
                "reason": decision.reason,
            },
        )
        if self.approver is not None:
            pending = self.coordinator.get(approval_id)
            self._spawn(self.approver.request(pending, risk), self._prompts)

        verdict = await self.coordinator.await_resolution(approval_id)
        self.observer.action_resolved(approval_id, verdict.value)

        if verdict == Verdict.APPROVE:
            self._approve(action)
        else:
            self.stats.actions_denied += 1

    def _approve(self, action: ActionEvent) -> None:
        self.stats.actions_approved += 1
        if action.type.is_file_action:
            self.stats.files_changed += 1

    def _notify(self, event_kind: str, payload: dict[str, Any]) -> None:
        self._spawn(self.notifier.send(event_kind, payload), self._background)

    def _spawn(self, coro: Coroutine, tasks: set[asyncio.Task]) -> None:
        task = asyncio.create_task(coro)
        tasks.add(task)
        task.add_done_callback(tasks.discard)

    async def _finish(self, tasks: list[Task], start: float) -> SessionResult:
        """Publish the final state and wait for outstanding notifications."""
        duration = time.perf_counter() - start
        insights = self.history.insights()

        # Open console prompts have nothing left to decide
        for prompt in list(self._prompts):
            prompt.cancel()

        self.observer.session_finished(self.stats, insights)
        self._notify(
            "session_complete",
            {
                "completed": self.stats.tasks_completed,
                "failed": self.stats.tasks_failed,
                "approved": self.stats.actions_approved,
                "denied": self.stats.actions_denied,
                "stop_reason": self._stop_reason.value if self._stop_reason else None,
            },
        )
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

        result = SessionResult(
            stats=self.stats,
            insights=insights,
            tasks=tasks,
            stop_reason=self._stop_reason,
            duration_seconds=duration,
        )
        if self.summary_path is not None:
            self._write_summary(result)
        logger.info(
            "Session complete",
            completed=self.stats.tasks_completed,
            failed=self.stats.tasks_failed,
            approved=self.stats.actions_approved,
            denied=self.stats.actions_denied,
            stop_reason=result.stop_reason.value if result.stop_reason else None,
            duration_s=f"{duration:.1f}",
        )
        return result

    def _write_summary(self, result: SessionResult) -> None:
        try:
            self.summary_path.parent.mkdir(parents=True, exist_ok=True)
            self.summary_path.write_text(result.model_dump_json(indent=2), encoding="utf-8")
        except OSError as e:
            logger.warning("Could not write session summary", path=str(self.summary_path), error=str(e))
            return
        logger.info("Session summary written", path=str(self.summary_path))
