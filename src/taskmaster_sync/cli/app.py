"""
CLI App - Main entry point for the taskmaster-sync command line tool.
"""

import argparse
import logging
import sys
from datetime import datetime, timezone

from taskmaster_sync import __version__
from taskmaster_sync.adapters.config import FileConfigProvider
from taskmaster_sync.adapters.github import (
    GitHubGraphQLClient,
    GitHubProjectsAdapter,
    parse_project_url,
    resolve_github_token,
)
from taskmaster_sync.adapters.taskmaster import TaskmasterReader
from taskmaster_sync.application.sync import (
    ProjectMaintenance,
    SnapshotStore,
    StateTracker,
    SyncOptions,
    SyncOrchestrator,
)
from taskmaster_sync.core.domain.enums import SubtaskMode, SyncDirection
from taskmaster_sync.core.exceptions import ConfigError
from taskmaster_sync.core.ports.config_provider import ProjectMapping, SyncConfig

from .exit_codes import ExitCode
from .logging import setup_logging
from .output import Console


def create_parser() -> argparse.ArgumentParser:
    """
    Create the command-line argument parser.

    Returns:
        Configured ArgumentParser instance.
    """
    parser = argparse.ArgumentParser(
        prog="taskmaster-sync",
        description="Sync Taskmaster tasks into GitHub Projects",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Map the master tag to project 7 of the acme organization
  taskmaster-sync configure --org acme --tag master --project 7

  # Map using the project URL, creating real issues in a repository
  taskmaster-sync configure --tag backend \\
      --project https://github.com/orgs/acme/projects/7 --repository acme/api

  # Preview what a sync would do
  taskmaster-sync sync --tag master --dry-run

  # Push only what changed since the last run
  taskmaster-sync sync --tag master

  # Full sync, also removing items whose tasks are gone
  taskmaster-sync sync --tag master --full

  # Show sync state for every mapped tag
  taskmaster-sync status

  # List tags found in .taskmaster/tasks/tasks.json
  taskmaster-sync list-tags

  # Create the required fields and status options before the first sync
  taskmaster-sync setup-project --tag master

  # Find duplicate items, then delete the redundant copies
  taskmaster-sync clean-duplicates --tag master
  taskmaster-sync clean-duplicates --tag master --delete
        """,
    )

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--project-root",
        type=str,
        help="Directory containing .taskmaster (default: current directory)",
    )
    parser.add_argument("--config", "-c", type=str, help="Path to sync config file (.json or .yaml)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    parser.add_argument("--quiet", "-q", action="store_true", help="Only print errors and a summary line")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument(
        "--output",
        choices=["text", "json"],
        default="text",
        help="Result format (default: text)",
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default="text",
        help="Log format (default: text)",
    )
    parser.add_argument("--log-file", type=str, help="Also write logs to this file")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    # sync
    sync_parser = subparsers.add_parser("sync", help="Sync a tag's tasks into its project")
    sync_parser.add_argument("--tag", "-t", default="master", help="Tag to sync (default: master)")
    sync_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show planned operations without changing GitHub or local state",
    )
    sync_parser.add_argument(
        "--full",
        action="store_true",
        help="Process every task and remove orphaned items",
    )
    sync_parser.add_argument(
        "--no-delta",
        action="store_true",
        help="Disable change detection (same work set as --full)",
    )
    sync_parser.add_argument(
        "--direction",
        choices=[d.value for d in SyncDirection],
        default=SyncDirection.TO_GITHUB.value,
        help="Sync direction (only to_github is supported)",
    )
    sync_parser.add_argument("--org", help="Override the configured organization")

    # status
    status_parser = subparsers.add_parser("status", help="Show sync state per tag")
    status_parser.add_argument("--tag", "-t", help="Only show this tag")

    # list-tags
    subparsers.add_parser("list-tags", help="List tags in the task file")

    # configure
    configure_parser = subparsers.add_parser("configure", help="Create or update the sync config")
    configure_parser.add_argument("--org", help="GitHub organization")
    configure_parser.add_argument("--tag", "-t", default="master", help="Tag to map (default: master)")
    configure_parser.add_argument(
        "--project",
        help="Project number or URL (https://github.com/orgs/<org>/projects/<n>)",
    )
    configure_parser.add_argument("--repository", help="owner/name; tasks become real issues there")
    configure_parser.add_argument(
        "--subtask-mode",
        choices=[m.value for m in SubtaskMode],
        help="How subtasks are represented (default: nested)",
    )
    configure_parser.add_argument(
        "--resolve",
        action="store_true",
        help="Look up and store the project node id now (needs a token)",
    )

    # setup-project
    setup_parser = subparsers.add_parser(
        "setup-project", help="Create required fields and status options in a tag's project"
    )
    setup_parser.add_argument("--tag", "-t", default="master", help="Tag whose project to set up (default: master)")

    # clean-duplicates
    clean_parser = subparsers.add_parser("clean-duplicates", help="Find and remove duplicate project items")
    clean_parser.add_argument("--tag", "-t", default="master", help="Tag whose project to check (default: master)")
    clean_parser.add_argument(
        "--delete",
        action="store_true",
        help="Delete redundant items (default: only report them)",
    )

    return parser


# =============================================================================
# Commands
# =============================================================================


def build_tracker() -> GitHubProjectsAdapter:
    token = resolve_github_token()
    return GitHubProjectsAdapter(GitHubGraphQLClient(token))


def run_sync(console: Console, args: argparse.Namespace, provider: FileConfigProvider) -> int:
    """
    Run one sync of a tag.

    Per-task failures are reported in the summary and do not change the exit
    code.
    """
    errors = provider.validate()
    if errors:
        console.config_errors(errors)
        return ExitCode.CONFIG_ERROR
    config = provider.load()
    config.get_mapping(args.tag)

    reader = TaskmasterReader(config.project_root)
    if not reader.exists():
        console.error(f"Task file not found: {reader.tasks_path}")
        return ExitCode.FILE_NOT_FOUND

    options = SyncOptions(
        dry_run=args.dry_run,
        force_full=args.full,
        use_delta=not args.no_delta,
        direction=SyncDirection(args.direction),
        quiet=args.quiet,
    )

    console.header(f"taskmaster-sync {__version__}")
    if options.dry_run:
        console.dry_run_banner()
    if provider.config_file_path:
        console.info(f"Config: {provider.config_file_path}")
    console.info(f"Tag: {args.tag}")
    console.info(f"Project: {config.organization} #{config.get_mapping(args.tag).project_number}")
    console.info(f"Mode: {'delta' if options.delta_enabled else 'full'}")

    tracker = build_tracker()
    orchestrator = SyncOrchestrator(tracker=tracker, task_source=reader, config=config, tag=args.tag)

    console.section("Syncing")
    result = orchestrator.sync(options, progress_callback=lambda msg, cur, total: console.progress(cur, total, msg))

    if not options.dry_run:
        config.last_sync[args.tag] = result.finished_at or datetime.now(timezone.utc)
        provider.save(config)

    console.sync_result(result)
    return ExitCode.SUCCESS


def run_status(console: Console, args: argparse.Namespace, provider: FileConfigProvider) -> int:
    config = provider.load()
    tags = [args.tag] if args.tag else sorted(config.project_mappings)

    console.header("Sync status")
    if provider.config_file_path:
        console.info(f"Config: {provider.config_file_path}")
    console.info(f"Organization: {config.organization or '(not set)'}")

    if not tags:
        console.warning("No tags are mapped. Run 'taskmaster-sync configure' first.")
        return ExitCode.SUCCESS

    snapshots = SnapshotStore(config.snapshot_dir)
    rows = []
    for tag in tags:
        mapping = config.project_mappings.get(tag)
        stats = StateTracker(config.state_file(tag)).get_stats()
        last_sync = config.last_sync.get(tag) or stats.last_sync
        rows.append(
            [
                tag,
                f"#{mapping.project_number}" if mapping else "-",
                str(stats.total_synced),
                "yes" if snapshots.path_for(tag).exists() else "no",
                last_sync.strftime("%Y-%m-%d %H:%M:%S UTC") if last_sync else "never",
            ]
        )
    console.print()
    console.table(["Tag", "Project", "Synced", "Snapshot", "Last sync"], rows)
    return ExitCode.SUCCESS


def run_list_tags(console: Console, args: argparse.Namespace, provider: FileConfigProvider) -> int:
    config = provider.load()
    reader = TaskmasterReader(config.project_root)
    if not reader.exists():
        console.error(f"Task file not found: {reader.tasks_path}")
        return ExitCode.FILE_NOT_FOUND

    tagged = reader.load_tagged()
    console.header("Tags")
    for tag, entry in sorted(tagged.items()):
        mapping = config.project_mappings.get(tag)
        label = f"project #{mapping.project_number}" if mapping else "unmapped"
        console.item(f"{tag} ({len(entry.tasks)} tasks)", label)
    return ExitCode.SUCCESS


def run_configure(console: Console, args: argparse.Namespace, provider: FileConfigProvider) -> int:
    """Create or update the mapping for one tag, then save the config."""
    config: SyncConfig = provider.load()

    if args.org:
        config.organization = args.org

    mapping = config.project_mappings.get(args.tag)
    if args.project:
        if args.project.isdigit():
            number = int(args.project)
        else:
            org, number = parse_project_url(args.project)
            if not config.organization:
                config.organization = org
            elif org != config.organization:
                raise ConfigError(
                    f"Project URL belongs to '{org}' but the configured organization is '{config.organization}'"
                )
        if mapping is None or mapping.project_number != number:
            mapping = ProjectMapping(
                project_number=number,
                repository=mapping.repository if mapping else None,
                subtask_mode=mapping.subtask_mode if mapping else SubtaskMode.NESTED,
                field_mappings=mapping.field_mappings if mapping else None,
            )

    if mapping is None:
        raise ConfigError(f"No mapping for tag '{args.tag}'; pass --project")

    if args.repository:
        mapping.repository = args.repository
    if args.subtask_mode:
        mapping.subtask_mode = SubtaskMode.from_string(args.subtask_mode)

    mapping_errors = mapping.validate(args.tag)
    if mapping_errors:
        console.config_errors(mapping_errors)
        return ExitCode.CONFIG_ERROR

    config.project_mappings[args.tag] = mapping

    if args.resolve:
        if not config.organization:
            raise ConfigError("organization is required to resolve the project id")
        tracker = build_tracker()
        mapping.project_id = tracker.get_project_id(config.organization, mapping.project_number)
        console.success(f"Resolved project id {mapping.project_id}")

    provider.save(config)
    console.success(f"Mapped tag '{args.tag}' to {config.organization or '?'} project #{mapping.project_number}")

    remaining = config.validate()
    for err in remaining:
        console.warning(err)
    return ExitCode.SUCCESS


def _load_valid_config(console: Console, args: argparse.Namespace, provider: FileConfigProvider) -> SyncConfig | None:
    errors = provider.validate()
    if errors:
        console.config_errors(errors)
        return None
    config = provider.load()
    config.get_mapping(args.tag)
    return config


def run_setup_project(console: Console, args: argparse.Namespace, provider: FileConfigProvider) -> int:
    config = _load_valid_config(console, args, provider)
    if config is None:
        return ExitCode.CONFIG_ERROR

    console.header(f"Setting up project #{config.get_mapping(args.tag).project_number}")
    console.info(f"Tag: {args.tag}")

    maintenance = ProjectMaintenance(tracker=build_tracker(), config=config, tag=args.tag)
    console.section("Checking fields")
    result = maintenance.setup_project()
    console.setup_result(result)
    return ExitCode.SUCCESS


def run_clean_duplicates(console: Console, args: argparse.Namespace, provider: FileConfigProvider) -> int:
    """
    Report duplicate items of a tag's project, deleting them with --delete.

    Items the sync state maps a task to are always kept. Failed deletions are
    reported and do not change the exit code.
    """
    config = _load_valid_config(console, args, provider)
    if config is None:
        return ExitCode.CONFIG_ERROR

    console.header(f"Duplicates in project #{config.get_mapping(args.tag).project_number}")
    if not args.delete:
        console.dry_run_banner()
    console.info(f"Tag: {args.tag}")

    maintenance = ProjectMaintenance(tracker=build_tracker(), config=config, tag=args.tag)
    result = maintenance.clean_duplicates(delete=args.delete)
    console.cleanup_result(result)
    return ExitCode.SUCCESS


COMMANDS = {
    "sync": run_sync,
    "status": run_status,
    "list-tags": run_list_tags,
    "configure": run_configure,
    "setup-project": run_setup_project,
    "clean-duplicates": run_clean_duplicates,
}


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for the CLI.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return ExitCode.ERROR

    setup_logging(
        level=logging.DEBUG if args.verbose else logging.WARNING if args.quiet else logging.INFO,
        log_format=args.log_format,
        log_file=args.log_file,
        static_fields={"service": "taskmaster-sync"} if args.log_format == "json" else None,
    )

    console = Console(
        color=not args.no_color,
        verbose=args.verbose,
        quiet=args.quiet,
        json_mode=args.output == "json",
    )

    provider = FileConfigProvider(
        config_path=args.config,
        project_root=args.project_root,
        cli_overrides={"organization": getattr(args, "org", None)} if args.command == "sync" else None,
    )

    try:
        exit_code = COMMANDS[args.command](console, args, provider)
        if exit_code != ExitCode.SUCCESS:
            console.json_errors()
        return exit_code

    except KeyboardInterrupt:
        console.print()
        console.warning("Interrupted by user")
        return ExitCode.INTERRUPTED

    except Exception as e:
        console.error(str(e))
        console.json_errors()
        if args.verbose:
            import traceback

            console.print()
            traceback.print_exc()
        return ExitCode.from_exception(e)


def run() -> None:
    """
    Entry point for the console script.

    Calls main() and exits with its return code.
    """
    sys.exit(main())


if __name__ == "__main__":
    run()
