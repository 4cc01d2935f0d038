"""Main entry point for the autopilot CLI.

This module provides the command-line interface using Click: running a task
queue or a single prompt under supervision, trying the detector on a line of
text, and showing the effective configuration.
"""

import asyncio
import json
import signal
import sys
from datetime import datetime
from pathlib import Path
from typing import NoReturn

import click

from autopilot import __version__
from autopilot.config import AutopilotConfig, SessionMode, Settings, get_settings, load_config
from autopilot.detection import ActionClassifier, RiskScorer
from autopilot.exceptions import AutopilotError
from autopilot.logging import get_logger, setup_logging
from autopilot.notify import LogNotifier, NotifierGroup, WebhookNotifier
from autopilot.policy import PolicyEngine
from autopilot.session import SessionOrchestrator, SessionResult, TaskQueue
from autopilot.ui.console import AutopilotConsole, get_console
from autopilot.ui.formatters import risk_color

logger = get_logger("autopilot.main")

MODE_CHOICE = click.Choice([mode.value for mode in SessionMode])


@click.group()
@click.pass_context
def cli(ctx: click.Context):
    """Edge Autopilot - supervisor for autonomous coding agents.

    Watches the agent's output, classifies every action it announces and
    decides which ones may proceed unattended.
    """
    ctx.ensure_object(dict)


def session_options(func):
    """Options shared by the commands that start a session."""
    options = [
        click.option("--mode", "-m", type=MODE_CHOICE, default=None, help="Session mode (overrides config)"),
        click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None, help="Rule configuration JSON"),
        click.option("--interactive-approvals", "-i", is_flag=True, help="Ask on the console for held actions"),
        click.option("--verbose", "-v", is_flag=True, help="Echo agent output"),
        click.option("--debug", "-d", is_flag=True, help="Enable debug logging"),
        click.option("--no-color", is_flag=True, help="Disable colored output"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@cli.command()
@click.argument("tasks_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--save", is_flag=True, help="Write task states back to TASKS_FILE")
@session_options
def queue(
    tasks_file: str,
    save: bool,
    mode: str | None,
    config_path: str | None,
    interactive_approvals: bool,
    verbose: bool,
    debug: bool,
    no_color: bool,
):
    """Run every task in TASKS_FILE under supervision."""
    code = asyncio.run(run_queue_session(
        Path(tasks_file),
        save=save,
        mode=mode,
        config_path=config_path,
        interactive_approvals=interactive_approvals,
        verbose=verbose,
        debug=debug,
        no_color=no_color,
    ))
    sys.exit(code)


@cli.command()
@click.argument("prompt", nargs=-1, required=True)
@click.option("--context", "-c", default="", help="Extra context for the task")
@session_options
def run(
    prompt: tuple[str, ...],
    context: str,
    mode: str | None,
    config_path: str | None,
    interactive_approvals: bool,
    verbose: bool,
    debug: bool,
    no_color: bool,
):
    """Run a single PROMPT under supervision."""
    code = asyncio.run(run_single_session(
        " ".join(prompt),
        context=context,
        mode=mode,
        config_path=config_path,
        interactive_approvals=interactive_approvals,
        verbose=verbose,
        debug=debug,
        no_color=no_color,
    ))
    sys.exit(code)


@cli.command()
@click.argument("text")
@click.option("--mode", "-m", type=MODE_CHOICE, default=None, help="Mode whose rules decide")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None, help="Rule configuration JSON")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.option("--no-color", is_flag=True, help="Disable colored output")
def detect(text: str, mode: str | None, config_path: str | None, output_json: bool, no_color: bool):
    """Classify TEXT and show the risk and decision it would get."""
    console = get_console(no_color=no_color)
    settings = get_settings()
    setup_logging(level=settings.autopilot_log_level)
    try:
        config = load_config(config_path or settings.autopilot_config_file)
    except AutopilotError as e:
        console.error(str(e))
        sys.exit(2)

    session_mode = resolve_mode(mode, settings, config)
    classifier = ActionClassifier()
    action = classifier.detect(text)
    if action is None:
        if output_json:
            click.echo(json.dumps({"action": None}))
        else:
            console.info("No action detected")
        return

    risk = RiskScorer(protected_paths=config.protected_paths).assess(action, classifier.history)
    decision = PolicyEngine(config.rules_for(session_mode), session_mode, config.stop_on).decide(action, risk)

    if output_json:
        click.echo(json.dumps(
            {
                "action": action.model_dump(mode="json"),
                "risk": risk.model_dump(mode="json"),
                "decision": decision.model_dump(mode="json"),
            },
            indent=2,
        ))
        return

    console.action(action, risk, decision)
    for name, contribution in risk.factors:
        console.print(f"  • {name} ({contribution:+.2f})", style=risk_color(risk.level))


@cli.command()
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None, help="Rule configuration JSON")
@click.option("--no-color", is_flag=True, help="Disable colored output")
def config(config_path: str | None, no_color: bool):
    """Show current configuration."""
    console = get_console(no_color=no_color)
    settings = get_settings()
    setup_logging(level=settings.autopilot_log_level)
    console.show_config(settings.model_dump_safe())

    try:
        rules = load_config(config_path or settings.autopilot_config_file)
    except AutopilotError as e:
        console.error(str(e))
        sys.exit(2)

    for mode in SessionMode:
        mode_rules = rules.rules_for(mode)
        console.show_config(
            {
                "auto_accept": ", ".join(t.value for t in mode_rules.auto_accept) or "-",
                "quick_confirm": ", ".join(t.value for t in mode_rules.quick_confirm) or "-",
                "require_approval": ", ".join(t.value for t in mode_rules.require_approval) or "-",
                "quick_confirm_timeout": f"{mode_rules.timeout_seconds:g}s",
            },
            title=f"Rules: {mode.value}" + (" (active)" if mode == resolve_mode(None, settings, rules) else ""),
        )
    console.show_config(
        {
            "error_count": rules.stop_on.error_count,
            "unknown_action": rules.stop_on.unknown_action,
            "protected_paths": ", ".join(rules.protected_paths) or "-",
        },
        title="Stop conditions",
    )


@cli.command()
def version():
    """Show version information."""
    click.echo(f"Edge Autopilot version {__version__}")


def resolve_mode(option: str | None, settings: Settings, config: AutopilotConfig) -> SessionMode:
    """Pick the session mode: CLI option, then environment, then config file."""
    if option:
        return SessionMode(option)
    return settings.autopilot_mode or config.mode


def build_orchestrator(
    console: AutopilotConsole,
    mode: str | None,
    config_path: str | None,
    interactive_approvals: bool,
    debug: bool,
) -> SessionOrchestrator:
    """Set up logging, notifications and the orchestrator for a session.

    Raises:
        AutopilotError: If the rule configuration cannot be loaded
    """
    settings = get_settings()
    session_id = datetime.now().strftime("%Y%m%d-%H%M%S")
    setup_logging(
        level="DEBUG" if debug else settings.autopilot_log_level,
        log_file=settings.session_log_path(session_id),
        session_id=session_id,
    )

    config = load_config(config_path or settings.autopilot_config_file)
    session_mode = resolve_mode(mode, settings, config)

    notifier = NotifierGroup([LogNotifier()])
    if settings.notify_webhook_url:
        notifier.add(WebhookNotifier(settings.notify_webhook_url, timeout=settings.notify_timeout))

    console.welcome(session_mode.value)
    logger.info("Starting session", session_id=session_id, mode=session_mode.value)

    return SessionOrchestrator(
        settings,
        config,
        console,
        mode=session_mode,
        notifier=notifier,
        interactive_approvals=interactive_approvals,
        summary_path=settings.session_summary_path(session_id),
    )


def install_stop_handler(orchestrator: SessionOrchestrator) -> None:
    """Stop the session gracefully on SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, orchestrator.stop)
        except NotImplementedError:
            # Signal handlers are unavailable on this platform
            return


def show_result(console: AutopilotConsole, result: SessionResult) -> None:
    console.show_summary(
        result.stats.model_dump(),
        result.insights,
        result.duration_seconds,
        stop_reason=result.stop_reason.value if result.stop_reason else None,
    )


async def run_queue_session(
    tasks_file: Path,
    save: bool = False,
    mode: str | None = None,
    config_path: str | None = None,
    interactive_approvals: bool = False,
    verbose: bool = False,
    debug: bool = False,
    no_color: bool = False,
) -> int:
    """Run a task file and print the session summary.

    Returns:
        int: Process exit code (0 when every task completed)
    """
    console = get_console(no_color=no_color, verbose=verbose or debug)
    try:
        task_queue = TaskQueue.from_file(tasks_file)
        orchestrator = build_orchestrator(console, mode, config_path, interactive_approvals, debug)
    except AutopilotError as e:
        console.error(str(e))
        return 2

    if not task_queue.pending():
        console.warning(f"No pending tasks in {tasks_file}")
        return 0

    install_stop_handler(orchestrator)
    result = await orchestrator.run_queue(task_queue)
    if save:
        task_queue.save()

    show_result(console, result)
    return 0 if result.stats.tasks_failed == 0 and not result.stopped_early else 1


async def run_single_session(
    prompt: str,
    context: str = "",
    mode: str | None = None,
    config_path: str | None = None,
    interactive_approvals: bool = False,
    verbose: bool = False,
    debug: bool = False,
    no_color: bool = False,
) -> int:
    """Run one prompt and print the session summary.

    Returns:
        int: Agent exit code
    """
    console = get_console(no_color=no_color, verbose=verbose or debug)
    try:
        orchestrator = build_orchestrator(console, mode, config_path, interactive_approvals, debug)
    except AutopilotError as e:
        console.error(str(e))
        return 2

    install_stop_handler(orchestrator)
    exit_code = await orchestrator.run_single(prompt, context)
    show_result(console, orchestrator.result)
    return exit_code


def main() -> NoReturn:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
