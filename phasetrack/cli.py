#!/usr/bin/env python3
"""
Workflow Phase Tracker CLI

Command-line interface for tracking development workflow sessions through
the brainstorming -> planning -> implementation -> review -> finishing phases.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .config import TrackerConfig
from .engine import WorkflowEngine
from .errors import WorkflowError
from .phases import all_phases, get_phase_config
from .schema import TaskPriority, TaskStatus, WorkflowPhase, WorkflowSession

PHASE_CHOICES = [p.value for p in WorkflowPhase]
TASK_STATUS_CHOICES = [s.value for s in TaskStatus]
PRIORITY_CHOICES = [p.value for p in TaskPriority]


# ============================================================================
# Output helpers
# ============================================================================

def _print_json(data):
    print(json.dumps(data, indent=2, default=str))


def _session_json(session: WorkflowSession) -> dict:
    return session.model_dump(mode="json", by_alias=True)


def format_session_summary(session: WorkflowSession) -> str:
    """One-line summary used by `list`."""
    done = sum(1 for t in session.tasks if t.status == TaskStatus.COMPLETED)
    return (
        f"{session.id}  [{session.status.value}]  {session.current_phase.value:<14}  "
        f"{done}/{len(session.tasks)} tasks  {session.name}"
    )


def format_session_detail(session: WorkflowSession, allowed: list[WorkflowPhase]) -> str:
    """Multi-line view used by `show`."""
    phase = get_phase_config(session.current_phase)
    lines = [
        "=" * 60,
        f"SESSION: {session.name} ({session.id})",
        "=" * 60,
        f"Status: {session.status.value}",
        f"Phase: {phase.name} - {phase.description}",
        f"Next phases: {', '.join(p.value for p in allowed) or 'none'}",
    ]
    if session.description:
        lines.append(f"Description: {session.description}")
    if session.branch:
        lines.append(f"Branch: {session.branch}")
    if session.error:
        lines.append(f"Error: {session.error}")

    lines.append("")
    lines.append(f"Tasks ({len(session.tasks)}):")
    for task in session.tasks:
        tag = task.phase.value if task.phase else "-"
        duration = f" {task.actual_minutes}m" if task.actual_minutes is not None else ""
        lines.append(f"  {task.id}  [{task.status.value}]  ({tag})  {task.title}{duration}")

    lines.append("")
    lines.append("History:")
    for transition in session.phase_history:
        source = transition.from_phase.value if transition.from_phase else "start"
        lines.append(
            f"  {transition.timestamp.isoformat()}  {source} -> {transition.to_phase.value}"
            f"  ({transition.triggered_by.value}) {transition.reason or ''}".rstrip()
        )
    return "\n".join(lines)


# ============================================================================
# Commands
# ============================================================================

def cmd_create(engine: WorkflowEngine, args) -> int:
    session = engine.create_session(
        name=args.name,
        description=args.description,
        initial_phase=args.phase,
        branch=args.branch,
        skills=args.skill,
    )
    if args.json:
        _print_json(_session_json(session))
    else:
        print(f"Created session {session.id} in phase {session.current_phase.value}")
    return 0


def cmd_list(engine: WorkflowEngine, args) -> int:
    sessions = engine.list_active_sessions() if args.active else engine.list_sessions()
    if args.json:
        _print_json([_session_json(s) for s in sessions])
    elif not sessions:
        print("No workflow sessions found.")
    else:
        for session in sessions:
            print(format_session_summary(session))
    return 0


def cmd_show(engine: WorkflowEngine, args) -> int:
    session = engine.get_session(args.session_id)
    if session is None:
        print(f"Error: Session not found: {args.session_id}", file=sys.stderr)
        return 1
    if args.json:
        _print_json(_session_json(session))
    else:
        print(format_session_detail(session, engine.get_allowed_transitions(session.id)))
    return 0


def cmd_transition(engine: WorkflowEngine, args) -> int:
    session = engine.transition_to(args.session_id, args.phase, reason=args.reason)
    print(f"Session {session.id} is now in phase {session.current_phase.value}")
    return 0


def cmd_advance(engine: WorkflowEngine, args) -> int:
    session = engine.auto_advance(args.session_id)
    if session is None:
        print("Cannot auto-advance: phase requires confirmation or has unfinished tasks.")
        return 1
    print(f"Advanced to phase: {session.current_phase.value}")
    return 0


def cmd_pause(engine: WorkflowEngine, args) -> int:
    session = engine.pause_session(args.session_id)
    print(f"Session {session.id} paused")
    return 0


def cmd_resume(engine: WorkflowEngine, args) -> int:
    session = engine.resume_session(args.session_id)
    print(f"Session {session.id} resumed")
    return 0


def cmd_complete(engine: WorkflowEngine, args) -> int:
    session = engine.complete_session(args.session_id)
    print(f"Session {session.id} completed")
    return 0


def cmd_fail(engine: WorkflowEngine, args) -> int:
    session = engine.fail_session(args.session_id, args.error)
    print(f"Session {session.id} marked as failed: {args.error}")
    return 0


def cmd_cancel(engine: WorkflowEngine, args) -> int:
    session = engine.cancel_session(args.session_id)
    print(f"Session {session.id} cancelled")
    return 0


def cmd_delete(engine: WorkflowEngine, args) -> int:
    if not engine.delete_session(args.session_id):
        print(f"Session not found: {args.session_id}", file=sys.stderr)
        return 1
    print(f"Deleted session {args.session_id}")
    return 0


def cmd_task_add(engine: WorkflowEngine, args) -> int:
    session = engine.get_session(args.session_id)
    # Untagged tasks default to the phase the session is in
    phase = args.phase or (session.current_phase if session else None)
    task = engine.add_task(
        args.session_id,
        title=args.title,
        description=args.description or "",
        phase=phase,
        priority=args.priority,
        estimated_minutes=args.estimate,
    )
    if args.json:
        _print_json(task.model_dump(mode="json", by_alias=True))
    else:
        print(f"Added task {task.id} ({task.phase.value if task.phase else 'untagged'})")
    return 0


def cmd_task_status(engine: WorkflowEngine, args) -> int:
    task = engine.update_task_status(args.session_id, args.task_id, args.status, error=args.error)
    message = f"Task {task.id} is now {task.status.value}"
    if task.actual_minutes is not None:
        message += f" ({task.actual_minutes} min)"
    print(message)
    return 0


def cmd_stats(engine: WorkflowEngine, args) -> int:
    stats = engine.get_stats()
    if args.json:
        _print_json(stats)
    else:
        for key, value in stats.items():
            print(f"{key.replace('_', ' ').capitalize()}: {value}")
    return 0


def cmd_phases(engine: WorkflowEngine, args) -> int:
    phases = all_phases()
    if args.json:
        _print_json([p.model_dump(mode="json") for p in phases])
        return 0
    for phase in phases:
        confirm = "confirm" if phase.requires_confirmation else "auto"
        duration = f"{phase.max_duration_minutes}m" if phase.max_duration_minutes else "unlimited"
        targets = ", ".join(p.value for p in phase.allowed_transitions) or "(terminal)"
        print(f"{phase.phase.value:<14} {confirm:<8} {duration:<10} -> {targets}")
    return 0


# ============================================================================
# Entry point
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="phasetrack",
        description="Track development workflow sessions through their phases",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  phasetrack create "Add user authentication" --phase planning
  phasetrack list --active
  phasetrack transition wf-1a2b3c4d5e6f implementation
  phasetrack task-add wf-1a2b3c4d5e6f "Write login tests"
  phasetrack task-status wf-1a2b3c4d5e6f task-0a1b2c3d4e5f completed
  phasetrack advance wf-1a2b3c4d5e6f
        """
    )
    parser.add_argument('--state-file', help='Workflow state file (overrides config)')
    parser.add_argument('--config', help='Config file (default: ~/.ccjk/workflow-config.yaml)')
    parser.add_argument('--verbose', action='store_true', help='Log engine activity')
    parser.add_argument('--json', action='store_true', help='Output as JSON where supported')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    create_parser = subparsers.add_parser('create', help='Create a new workflow session')
    create_parser.add_argument('name', help='Session name')
    create_parser.add_argument('--description', '-m', help='Session description')
    create_parser.add_argument('--phase', choices=PHASE_CHOICES, help='Initial phase (default: brainstorming)')
    create_parser.add_argument('--branch', '-b', help='Git branch for this workflow')
    create_parser.add_argument('--skill', action='append', default=[],
                               help='Skill ID (can be specified multiple times)')
    create_parser.set_defaults(func=cmd_create)

    list_parser = subparsers.add_parser('list', help='List workflow sessions')
    list_parser.add_argument('--active', action='store_true', help='Only active or paused sessions')
    list_parser.set_defaults(func=cmd_list)

    show_parser = subparsers.add_parser('show', help='Show a session with tasks and history')
    show_parser.add_argument('session_id')
    show_parser.set_defaults(func=cmd_show)

    transition_parser = subparsers.add_parser('transition', help='Move a session to another phase')
    transition_parser.add_argument('session_id')
    transition_parser.add_argument('phase', choices=PHASE_CHOICES)
    transition_parser.add_argument('--reason', '-r', help='Reason for the transition')
    transition_parser.set_defaults(func=cmd_transition)

    advance_parser = subparsers.add_parser('advance', help='Auto-advance if the current phase is done')
    advance_parser.add_argument('session_id')
    advance_parser.set_defaults(func=cmd_advance)

    for name, func, help_text in (
        ('pause', cmd_pause, 'Pause an active session'),
        ('resume', cmd_resume, 'Resume a paused session'),
        ('complete', cmd_complete, 'Complete an active session'),
        ('cancel', cmd_cancel, 'Cancel a session'),
        ('delete', cmd_delete, 'Delete a session and its tasks'),
    ):
        status_parser = subparsers.add_parser(name, help=help_text)
        status_parser.add_argument('session_id')
        status_parser.set_defaults(func=func)

    fail_parser = subparsers.add_parser('fail', help='Mark a session as failed')
    fail_parser.add_argument('session_id')
    fail_parser.add_argument('--error', '-e', required=True, help='Failure description')
    fail_parser.set_defaults(func=cmd_fail)

    task_add_parser = subparsers.add_parser('task-add', help='Add a task to a session')
    task_add_parser.add_argument('session_id')
    task_add_parser.add_argument('title')
    task_add_parser.add_argument('--description', '-m', help='Task description')
    task_add_parser.add_argument('--phase', choices=PHASE_CHOICES,
                                 help='Phase the task belongs to (default: current phase)')
    task_add_parser.add_argument('--priority', choices=PRIORITY_CHOICES, default='medium')
    task_add_parser.add_argument('--estimate', type=int, default=0, help='Estimated minutes')
    task_add_parser.set_defaults(func=cmd_task_add)

    task_status_parser = subparsers.add_parser('task-status', help='Update a task status')
    task_status_parser.add_argument('session_id')
    task_status_parser.add_argument('task_id')
    task_status_parser.add_argument('status', choices=TASK_STATUS_CHOICES)
    task_status_parser.add_argument('--error', '-e', help='Error message for failed tasks')
    task_status_parser.set_defaults(func=cmd_task_status)

    stats_parser = subparsers.add_parser('stats', help='Show workflow statistics')
    stats_parser.set_defaults(func=cmd_stats)

    phases_parser = subparsers.add_parser('phases', help='Show phase definitions')
    phases_parser.set_defaults(func=cmd_phases)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    config = TrackerConfig.load(Path(args.config) if args.config else None)
    verbose = args.verbose or config.verbose

    logging.basicConfig(
        level=logging.INFO if verbose else config.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    if args.state_file:
        config.set("state_file", args.state_file)
    config.set("verbose", verbose)
    engine = WorkflowEngine.from_config(config)

    try:
        return args.func(engine, args)
    except (WorkflowError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
