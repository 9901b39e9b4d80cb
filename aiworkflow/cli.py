"""Command line interface: ``aiworkflow <command>``.

Every command resolves the project root the same way (``--root``, then
``AIWORKFLOW_PROJECT_ROOT``, then the working directory), prints its results
through a rich console and returns 0 on success or 1 on failure.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

from rich.console import Console
from rich.prompt import Confirm, Prompt

from . import __version__
from .context_bridge import BRIDGE_PHASES, ContextBridge, prompt_checklist, prompt_context_document, render_check
from .context_extractor import extract_and_save
from .errors import NotificationError, WorkflowError
from .github_client import GitHubClient
from .health import HealthChecker, render_report as render_health
from .metrics import DEFAULT_PERIOD_DAYS, WorkflowMetricsCollector
from .migration import MigrationManager, render_analysis, render_post_migration_guide
from .models import PHASES, PlanStep
from .next_phase import generate_next_phase_context
from .notifications import CHANNELS, KINDS, TeamNotifier
from .phase_detection import DEFAULT_CONFIDENCE_THRESHOLD, PhaseDetector, render_detection
from .progress import ProgressTracker, format_progress, render_progress
from .quality import QualityEvaluator
from .rollback import COMPONENT_PATHS, RollbackManager, render_backups, render_result
from .scaffold import LANGUAGES, SECURITY_LEVELS, ProjectScaffolder, SetupAnswers, prompt_setup_answers
from .selftest import SelfTestRunner, render_report as render_selftest
from .settings import Settings, resolve_project_root
from .staged import StagedMigrationManager, render_status
from .validation import MigrationValidator, render_report as render_validation
from .workflow_logging import log_error_with_context, setup_logging

logger = logging.getLogger("aiworkflow.cli")

Handler = Callable[[argparse.Namespace, Console, Settings], int]

REPORT_FORMATS = ("console", "json", "md")


def _root(args: argparse.Namespace) -> Path:
    return resolve_project_root(args.root)


def _repository(args: argparse.Namespace, settings: Settings) -> str:
    if getattr(args, "repository", None):
        return args.repository
    slug = settings.repository_slug()
    return "/".join(slug) if slug else _root(args).name


# ----------------------------------------------------------------------
# Scaffolding and analysis
# ----------------------------------------------------------------------

def cmd_setup(args: argparse.Namespace, console: Console, settings: Settings) -> int:
    console.print("[bold blue]🤖 AI Development Workflow Setup[/bold blue]")
    if args.name:
        answers = SetupAnswers(
            project_name=args.name,
            project_version=args.project_version,
            author=args.author,
            description=args.description,
            language=args.language,
            framework=args.framework,
            ai_tools=[t.strip() for t in args.ai_tools.split(",") if t.strip()],
            team_size=args.team_size,
            security_level=args.security_level,
        )
    else:
        answers = prompt_setup_answers(console)

    result = ProjectScaffolder(_root(args)).setup(answers)
    for document in result["documents"]:
        console.print(f"[green]✅ {document}[/green]")
    if result["package_json_updated"]:
        console.print("[cyan]🔧 package.json updated[/cyan]")

    console.print("\n[yellow]📖 Next steps:[/yellow]")
    console.print("1. GitHub Settings → Actions → General → workflow permissions")
    console.print("2. Settings → General → Template repository (to reuse this setup)")
    console.print("3. Invite the team")
    console.print("4. Issues → New issue → start with the requirements template")
    return 0


def cmd_init_template(args: argparse.Namespace, console: Console, settings: Settings) -> int:
    console.print("[bold blue]🤖 Template repository setup[/bold blue]")
    for entry in ProjectScaffolder(_root(args)).init_template():
        console.print(f"[green]✅ {entry}[/green]")
    return 0


def cmd_detect_phase(args: argparse.Namespace, console: Console, settings: Settings) -> int:
    result = PhaseDetector(confidence_threshold=args.confidence_threshold).detect(_root(args))
    if args.json:
        console.print_json(json.dumps(result.to_dict(detailed=args.detailed), ensure_ascii=False))
    else:
        render_detection(console, result, detailed=args.detailed)
    return 0


# ----------------------------------------------------------------------
# Migration
# ----------------------------------------------------------------------

def _keep_existing(source: Path, target: Path, relative: str) -> str:
    return "keep"


def _prompt_conflict(console: Console) -> Callable[[Path, Path, str], str]:
    def resolve(source: Path, target: Path, relative: str) -> str:
        console.print(f"\n[yellow]⚠️ {relative} differs from the template[/yellow]")
        return Prompt.ask("Action", choices=["keep", "replace", "manual"], default="keep", console=console)
    return resolve


def cmd_migrate(args: argparse.Namespace, console: Console, settings: Settings) -> int:
    root = _root(args)
    manager = MigrationManager(root, args.template_root, settings)
    analysis = manager.analyze(phase=args.phase)
    plan = manager.plan(analysis)
    render_analysis(console, analysis, plan)

    if args.analyze_only:
        return 0
    if not plan.steps:
        console.print("\n[green]✅ The project already has every template component[/green]")
        return 0
    interactive = not (args.force or args.yes)
    if interactive and not Confirm.ask("\nRun the migration?", default=True, console=console):
        console.print("[yellow]Migration cancelled[/yellow]")
        return 0

    staged = StagedMigrationManager(root, args.template_root, settings)
    state = staged.load()
    planned_ids = {step.id for step in state.planned_steps} if state else set()

    def on_progress(step_id: str, step_name: str, status: str, message: Optional[str]) -> None:
        mark = "[green]✅" if status == "completed" else "[red]❌"
        suffix = f" ({message})" if message else ""
        console.print(f"{mark} {step_name}{suffix}[/]")
        if step_id in planned_ids:
            staged.update_progress(step_id, step_name, status, message)

    def on_error(step: PlanStep, error: Exception) -> bool:
        if args.continue_on_error:
            return True
        if args.force or args.yes:
            return False
        return Confirm.ask(f"Step '{step.name}' failed ({error}). Continue?", default=False, console=console)

    outcome = manager.execute(
        plan,
        analysis,
        resolver=None if args.force else _keep_existing if args.yes else _prompt_conflict(console),
        on_error=on_error,
        on_progress=on_progress,
        force=args.force,
    )

    if outcome.backup_path:
        console.print(f"\n💾 Backup: {outcome.backup_path}")
    for relative in outcome.manual_merges:
        console.print(f"[yellow]✋ Merge manually: {relative}[/yellow]")
    if not outcome.succeeded:
        console.print(f"[red]❌ Failed steps: {', '.join(outcome.failed)}[/red]")
        return 1
    console.print("\n[green]🎉 Migration completed[/green]")
    render_post_migration_guide(console)
    return 0


def cmd_validate(args: argparse.Namespace, console: Console, settings: Settings) -> int:
    validator = MigrationValidator(_root(args))
    report = validator.run()
    render_validation(console, report, detailed=args.detailed)

    if args.fix_auto and report.fixable:
        console.print("\n[blue]🔧 Applying automatic fixes...[/blue]")
        for rule_id, outcome in validator.apply_fixes(report).items():
            colour = "green" if outcome == "fixed" else "red"
            console.print(f"[{colour}]  {rule_id}: {outcome}[/{colour}]")
        report = validator.run()

    if args.report != "console":
        path = validator.write_report(report, args.report)
        console.print(f"\n📄 Report saved: {path}")
    return 1 if report.critical_failures else 0


def cmd_rollback(args: argparse.Namespace, console: Console, settings: Settings) -> int:
    manager = RollbackManager(_root(args), args.backup_dir, args.template_root, settings)
    if args.list_backups:
        render_backups(console, manager.list_backups())
        return 0

    backup = manager.select_backup(args.backup)
    components = [c.strip() for c in args.partial.split(",")] if args.partial else None
    console.print(f"[blue]📦 Backup: {backup.name} ({backup.created:%Y-%m-%d %H:%M:%S})[/blue]")

    if args.verify:
        files = manager.files_to_restore(backup)
        console.print(f"{len(files)} files would be restored or removed:")
        for relative in files:
            console.print(f"  - {relative}")
        return 0

    if not args.force and not Confirm.ask("Roll back to this backup?", default=False, console=console):
        console.print("[yellow]Rollback cancelled[/yellow]")
        return 0

    result = manager.rollback(backup, components, reinstall=args.reinstall, commit=args.commit)
    render_result(console, result)
    if not result.succeeded:
        return 1
    if args.skip_health_check:
        return 0

    console.print("\n[yellow]🔍 Checking the rolled-back project...[/yellow]")
    health = manager.verify()
    render_health(console, health)
    if health.critical_issues:
        failed = ", ".join(r.check_id for r in health.critical_issues)
        console.print(f"[red]❌ Post-rollback health check could not run: {failed}[/red]")
        return 1
    return 0


def cmd_staged(args: argparse.Namespace, console: Console, settings: Settings) -> int:
    manager = StagedMigrationManager(_root(args), args.template_root, settings)
    if args.schedule:
        state = manager.schedule(args.schedule, current_phase=args.current_phase)
        console.print(f"[green]📅 Scheduled {state.total_steps} steps up to {state.target_phase}[/green]")
        console.print("Run [bold]aiworkflow staged --resume[/bold] to apply them")
        return 0
    if args.pause:
        manager.pause()
        console.print("[blue]⏸️ Migration paused[/blue]")
        return 0
    if args.resume:
        state = manager.resume()
        render_status(console, state)
        return 1 if state.status == "failed" else 0
    if args.reset:
        if not args.yes and not Confirm.ask("Discard the migration state?", default=False, console=console):
            return 0
        removed = manager.reset()
        console.print("[green]🔄 Migration state reset[/green]" if removed else "[yellow]No migration state to reset[/yellow]")
        return 0

    render_status(console, manager.load())
    return 0


def cmd_health(args: argparse.Namespace, console: Console, settings: Settings) -> int:
    root = _root(args)
    github = None
    if settings.github_token and settings.repository_slug():
        github = GitHubClient.from_settings(settings)
    checker = HealthChecker(root, settings, github=github)
    try:
        report = checker.run()
        render_health(console, report, detailed=args.detailed)

        if args.fix_issues:
            restored = checker.fix_issues(report, args.template_root)
            for relative in restored:
                console.print(f"[green]🔧 Restored {relative}[/green]")
            if restored:
                report = checker.run()

        if args.report != "console":
            path = checker.write_report(report, args.report)
            console.print(f"\n📄 Report saved: {path}")
    finally:
        if github is not None:
            github.close()
    return 0 if report.healthy else 1


def cmd_selftest(args: argparse.Namespace, console: Console, settings: Settings) -> int:
    runner = SelfTestRunner(args.test_env, console=console, verbose=args.verbose)
    try:
        report = runner.run(full_migration=args.full_migration)
        render_selftest(console, report, verbose=args.verbose)
    finally:
        if args.cleanup:
            runner.cleanup()
            console.print("[dim]🧹 Test environment removed[/dim]")
    return 0 if report.succeeded else 1


# ----------------------------------------------------------------------
# Context inheritance
# ----------------------------------------------------------------------

def cmd_context(args: argparse.Namespace, console: Console, settings: Settings) -> int:
    bridge = ContextBridge(_root(args))

    if args.context_command == "complete":
        if args.from_file:
            document = bridge.load_document_file(args.from_file, args.phase)
        else:
            document = prompt_context_document(console, args.phase)
        result = bridge.complete_phase(document, generate_prompt=args.generate_prompt)
        console.print(f"[green]✅ Context saved: {result['context_path']}[/green]")
        if result["handoff_prompt_path"]:
            console.print(f"[green]🤖 Hand-off prompt: {result['handoff_prompt_path']}[/green]")
        return 0

    if args.context_command == "start":
        path = bridge.start_phase(args.phase)
        console.print(f"[green]🤖 Hand-off prompt for {args.phase}: {path}[/green]")
        return 0

    if args.context_command == "check":
        answers = None
        if args.interactive:
            answers = prompt_checklist(console, bridge.check().checklist)
        render_check(console, bridge.check(answers))
        return 0

    metrics = bridge.metrics()
    console.print_json(json.dumps(metrics, ensure_ascii=False, default=str))
    return 0


def _issue_body(args: argparse.Namespace) -> str:
    if args.body_file:
        return Path(args.body_file).read_text(encoding="utf-8")
    if args.body_env:
        return os.environ.get(args.body_env, "")
    return args.body or ""


def cmd_extract_context(args: argparse.Namespace, console: Console, settings: Settings) -> int:
    result = extract_and_save(
        _root(args),
        args.phase,
        _issue_body(args),
        issue_number=args.issue_number,
        issue_title=args.issue_title,
        repository=args.repository,
        settings=settings,
    )
    console.print(f"[green]✅ Context extracted: {result['context_path']}[/green]")
    if result["next_phase"]:
        console.print(f"➡️  Next phase: {result['next_phase']}")
    return 0


def cmd_evaluate_quality(args: argparse.Namespace, console: Console, settings: Settings) -> int:
    report = QualityEvaluator(_root(args), settings).evaluate(args.phase, args.context_file)
    console.print(f"\n[bold]📊 Context quality ({report.phase})[/bold]")
    console.print(f"Score: {report.overall_score}/100  Grade: {report.quality_grade}")
    for name, score in report.score.detailed_scores().items():
        console.print(f"  {name}: {score}")
    for recommendation in report.score.recommendations():
        console.print(f"[yellow]  💡 {recommendation}[/yellow]")
    return 0


def cmd_next_phase(args: argparse.Namespace, console: Console, settings: Settings) -> int:
    path = generate_next_phase_context(_root(args), args.completed, args.repository)
    if path is None:
        console.print(f"[green]🎉 {args.completed} is the final phase[/green]")
    else:
        console.print(f"[green]✅ Next phase context: {path}[/green]")
    return 0


# ----------------------------------------------------------------------
# Reporting
# ----------------------------------------------------------------------

def cmd_metrics(args: argparse.Namespace, console: Console, settings: Settings) -> int:
    end = datetime.now(timezone.utc)
    with GitHubClient.from_settings(settings) as github:
        collector = WorkflowMetricsCollector(github, _root(args))
        report = collector.collect(end - timedelta(days=args.days), end)
        path = collector.write_report(report)
    if args.json:
        console.print_json(json.dumps(report.to_dict(), ensure_ascii=False))
    console.print(f"[green]📈 Metrics report: {path}[/green]")
    return 0


def cmd_progress(args: argparse.Namespace, console: Console, settings: Settings) -> int:
    with GitHubClient.from_settings(settings) as github:
        tracker = ProgressTracker(github, _root(args))
        data = tracker.track()
        if not args.no_save:
            tracker.save(data)
    if args.format == "console":
        render_progress(console, data)
    else:
        print(format_progress(data, args.format))
    return 0


def cmd_notify(args: argparse.Namespace, console: Console, settings: Settings) -> int:
    notifier = TeamNotifier(_root(args), _repository(args, settings), settings)
    if args.kind == "phase-complete":
        if not args.phase:
            raise NotificationError("--phase is required for phase-complete notifications")
        content = notifier.phase_complete_content(args.phase, args.quality_score, args.issue_url)
    else:
        content = notifier.progress_content()

    channels: List[str] = list(CHANNELS) if args.channel == "all" else [args.channel]
    if args.channel == "all":
        channels = [c for c in channels if notifier.webhook_for(c)]
        if not channels:
            raise NotificationError("No webhook URL configured (SLACK_WEBHOOK_URL / TEAMS_WEBHOOK_URL)")
    for channel in channels:
        notifier.send(channel, content, args.webhook_url)
        console.print(f"[green]✅ {channel} notification sent[/green]")
    return 0


COMMANDS: Dict[str, Handler] = {
    "setup": cmd_setup,
    "init-template": cmd_init_template,
    "detect-phase": cmd_detect_phase,
    "migrate": cmd_migrate,
    "validate": cmd_validate,
    "rollback": cmd_rollback,
    "staged": cmd_staged,
    "health": cmd_health,
    "selftest": cmd_selftest,
    "context": cmd_context,
    "extract-context": cmd_extract_context,
    "evaluate-quality": cmd_evaluate_quality,
    "next-phase": cmd_next_phase,
    "metrics": cmd_metrics,
    "progress": cmd_progress,
    "notify": cmd_notify,
}


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--root", help="Project root (default: $AIWORKFLOW_PROJECT_ROOT or the current directory)")

    template = argparse.ArgumentParser(add_help=False)
    template.add_argument("--template-root", help="Template directory (default: the bundled template)")

    parser = argparse.ArgumentParser(prog="aiworkflow", description="AI development workflow toolkit")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", help="Console log level (default: $AIWORKFLOW_LOG_LEVEL or WARNING)")
    parser.add_argument("--log-file", type=Path, help="Write a JSON log trail to this file")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("setup", parents=[common], help="Generate the project documents")
    p.add_argument("--name", help="Project name; omit to answer interactively")
    p.add_argument("--project-version", default="0.1.0")
    p.add_argument("--author", default="")
    p.add_argument("--description", default="A new AI-assisted development project")
    p.add_argument("--language", choices=LANGUAGES, default="JavaScript")
    p.add_argument("--framework", default="Other")
    p.add_argument("--ai-tools", default="GitHub Copilot, Claude, Windsurf")
    p.add_argument("--team-size", default="3-5")
    p.add_argument("--security-level", choices=list(SECURITY_LEVELS), default="medium")

    sub.add_parser("init-template", parents=[common], help="Create the template repository skeleton")

    p = sub.add_parser("detect-phase", parents=[common], help="Estimate the project's development phase")
    p.add_argument("--detailed", action="store_true")
    p.add_argument("--json", action="store_true", help="Print the result as JSON")
    p.add_argument("--confidence-threshold", type=float, default=DEFAULT_CONFIDENCE_THRESHOLD)

    p = sub.add_parser("migrate", parents=[common, template], help="Install the workflow template into a project")
    p.add_argument("--analyze-only", action="store_true")
    p.add_argument("--phase", choices=PHASES, help="Override the estimated phase")
    p.add_argument("--force", action="store_true", help="Replace conflicting files without asking")
    p.add_argument("--yes", action="store_true", help="Do not ask for confirmation")
    p.add_argument("--continue-on-error", action="store_true")

    p = sub.add_parser("validate", parents=[common], help="Check that a project is ready for migration")
    p.add_argument("--fix-auto", action="store_true", help="Apply automatic fixes")
    p.add_argument("--report", choices=REPORT_FORMATS, default="console", help="Also write the report as JSON or Markdown")
    p.add_argument("--detailed", action="store_true")

    p = sub.add_parser("rollback", parents=[common, template], help="Restore a project from a migration backup")
    p.add_argument("--list-backups", action="store_true")
    p.add_argument("--backup-dir")
    p.add_argument("--backup", help="Backup name (default: the newest)")
    p.add_argument("--partial", help=f"Comma separated components: {', '.join(COMPONENT_PATHS)}")
    p.add_argument("--force", action="store_true", help="Do not ask for confirmation")
    p.add_argument("--reinstall", action="store_true", help="Run npm install after restoring package.json")
    p.add_argument("--commit", action="store_true", help="Commit the rollback")
    p.add_argument("--verify", action="store_true", help="List what would be restored without changing anything")
    p.add_argument("--skip-health-check", action="store_true", help="Do not run the health check afterwards")

    p = sub.add_parser("staged", parents=[common, template], help="Phase-by-phase migration")
    actions = p.add_mutually_exclusive_group()
    actions.add_argument("--status", action="store_true")
    actions.add_argument("--schedule", choices=PHASES, metavar="PHASE")
    actions.add_argument("--pause", action="store_true")
    actions.add_argument("--resume", action="store_true")
    actions.add_argument("--reset", action="store_true")
    p.add_argument("--current-phase", choices=PHASES, default="discovery")
    p.add_argument("--yes", action="store_true")

    p = sub.add_parser("health", parents=[common, template], help="Post-migration health check")
    p.add_argument("--report", choices=REPORT_FORMATS, default="console", help="Also write the report as JSON or Markdown")
    p.add_argument("--fix-issues", action="store_true")
    p.add_argument("--detailed", action="store_true")

    p = sub.add_parser("selftest", help="Exercise the migration commands on a mock project")
    p.add_argument("--test-env", help="Directory for the mock project (default: a temporary directory)")
    p.add_argument("--cleanup", action="store_true")
    p.add_argument("--verbose", action="store_true")
    p.add_argument("--full-migration", action="store_true")

    p = sub.add_parser("context", help="Record and hand off phase context")
    context_sub = p.add_subparsers(dest="context_command", required=True)
    c = context_sub.add_parser("complete", parents=[common], help="Record the context of a completed phase")
    c.add_argument("--phase", choices=BRIDGE_PHASES)
    c.add_argument("--from-file", help="Read the context document from a YAML file")
    c.add_argument("--generate-prompt", action="store_true")
    c = context_sub.add_parser("start", parents=[common], help="Generate the hand-off prompt for a phase")
    c.add_argument("--phase", choices=BRIDGE_PHASES, required=True)
    c = context_sub.add_parser("check", parents=[common], help="Check the hand-off quality")
    c.add_argument("--interactive", action="store_true")
    context_sub.add_parser("metrics", parents=[common], help="Summarise recorded contexts")

    p = sub.add_parser("extract-context", parents=[common], help="Extract a context document from an issue body")
    p.add_argument("--phase", choices=BRIDGE_PHASES, required=True)
    p.add_argument("--issue-number")
    p.add_argument("--issue-title")
    p.add_argument("--repository")
    body = p.add_mutually_exclusive_group()
    body.add_argument("--body")
    body.add_argument("--body-env", help="Read the body from this environment variable")
    body.add_argument("--body-file")

    p = sub.add_parser("evaluate-quality", parents=[common], help="Score a context document")
    p.add_argument("--phase")
    p.add_argument("--context-file")

    p = sub.add_parser("next-phase", parents=[common], help="Render the next phase's starting context")
    p.add_argument("--completed", choices=PHASES, required=True)
    p.add_argument("--repository")

    p = sub.add_parser("metrics", parents=[common], help="Collect workflow metrics from GitHub")
    p.add_argument("--days", type=int, default=DEFAULT_PERIOD_DAYS)
    p.add_argument("--json", action="store_true")

    p = sub.add_parser("progress", parents=[common], help="Track project progress from GitHub")
    p.add_argument("--format", choices=["console", "json", "yaml"], default="console")
    p.add_argument("--no-save", action="store_true")

    p = sub.add_parser("notify", parents=[common], help="Send a Slack or Teams notification")
    p.add_argument("--channel", choices=[*CHANNELS, "all"], default="all")
    p.add_argument("--kind", choices=KINDS, default="phase-complete")
    p.add_argument("--phase")
    p.add_argument("--quality-score", type=int, default=0)
    p.add_argument("--issue-url")
    p.add_argument("--repository")
    p.add_argument("--webhook-url", help="Override the configured webhook URL")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = Settings.from_env()
    setup_logging(args.log_level or settings.log_level, args.log_file or settings.log_file)
    console = Console()

    handler = COMMANDS[args.command]
    try:
        return handler(args, console, settings)
    except WorkflowError as e:
        log_error_with_context(e, {"command": args.command, **e.details})
        console.print(f"[red]❌ {e.message}[/red]")
        return 1
    except ValueError as e:
        console.print(f"[red]❌ {e}[/red]")
        return 1
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        return 130


if __name__ == "__main__":
    sys.exit(main())
