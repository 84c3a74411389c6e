"""
Output - Console output formatting for taskmaster-sync.

Provides pretty-printed output with colors and formatting.
"""

import json
import sys

from taskmaster_sync.application.sync import CleanupResult, SetupResult, SyncResult


class Colors:
    """ANSI color codes for terminal output."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"

    BG_YELLOW = "\033[43m"


class Symbols:
    """Unicode symbols for terminal output."""

    CHECK = "✓"
    CROSS = "✗"
    ARROW = "→"
    DOT = "•"
    WARN = "⚠"
    INFO = "ℹ"
    GEAR = "⚙"

    BOX_H = "─"


class Console:
    """
    Console output helper with colors and formatting.

    Attributes:
        color: Whether to use ANSI color codes.
        verbose: Whether to print debug messages.
        quiet: Whether to suppress most output (for CI/scripting).
        json_mode: Whether to output JSON format for programmatic use.
    """

    MAX_LISTED = 5

    def __init__(
        self,
        color: bool = True,
        verbose: bool = False,
        quiet: bool = False,
        json_mode: bool = False,
    ):
        """
        Initialize the console output helper.

        Args:
            color: Enable colored output. Automatically disabled if stdout is not a TTY.
            verbose: Enable verbose debug output.
            quiet: Suppress most output, only show errors and final summary.
            json_mode: Output JSON format instead of text.
        """
        self.json_mode = json_mode
        self.color = color and sys.stdout.isatty() and not json_mode
        self.quiet = quiet or json_mode
        self.verbose = verbose and not self.quiet

        self._json_errors: list[str] = []

    def _c(self, text: str, *codes: str) -> str:
        """Wrap text in color codes, or return it unchanged when color is off."""
        if not self.color:
            return text
        return "".join(codes) + text + Colors.RESET

    def print(self, text: str = "", force: bool = False) -> None:
        if self.quiet and not force:
            return
        print(text)

    def header(self, text: str) -> None:
        if self.quiet:
            return
        width = max(len(text) + 4, 50)
        border = self._c(Symbols.BOX_H * width, Colors.CYAN) if self.color else "-" * width

        self.print()
        self.print(border)
        self.print(self._c(f"  {text}", Colors.BOLD, Colors.CYAN))
        self.print(border)
        self.print()

    def section(self, text: str) -> None:
        if self.quiet:
            return
        self.print()
        self.print(self._c(f"{Symbols.ARROW} {text}", Colors.BOLD, Colors.BLUE))

    def success(self, text: str) -> None:
        if self.quiet:
            return
        self.print(self._c(f"  {Symbols.CHECK} {text}", Colors.GREEN))

    def error(self, text: str) -> None:
        """
        Print an error message.

        Always prints, even in quiet mode. Collected instead in JSON mode.
        """
        if self.json_mode:
            self._json_errors.append(text)
            return
        print(self._c(f"  {Symbols.CROSS} {text}", Colors.RED))

    def config_errors(self, errors: list[str]) -> None:
        if self.json_mode:
            self._json_errors.extend(errors)
            return
        print(self._c(f"  {Symbols.CROSS} Configuration is invalid:", Colors.RED))
        for err in errors:
            print(f"    {Symbols.DOT} {err}")
        print(self._c("    Run 'taskmaster-sync configure' to fix the settings.", Colors.DIM))

    def warning(self, text: str) -> None:
        if self.quiet:
            return
        self.print(self._c(f"  {Symbols.WARN} {text}", Colors.YELLOW))

    def info(self, text: str) -> None:
        if self.quiet:
            return
        self.print(self._c(f"  {Symbols.INFO} {text}", Colors.CYAN))

    def detail(self, text: str) -> None:
        if self.quiet:
            return
        self.print(self._c(f"    {text}", Colors.DIM))

    def debug(self, text: str) -> None:
        if self.verbose:
            self.print(self._c(f"  [DEBUG] {text}", Colors.DIM))

    def item(self, text: str, status: str | None = None) -> None:
        """
        Print a list item with optional status indicator.

        Args:
            text: Item text to display.
            status: "ok", "skip", "fail", or any label shown dimmed.
        """
        if self.quiet:
            return
        status_str = ""
        if status == "ok":
            status_str = self._c(f" [{Symbols.CHECK}]", Colors.GREEN)
        elif status == "skip":
            status_str = self._c(" [SKIP]", Colors.YELLOW)
        elif status == "fail":
            status_str = self._c(f" [{Symbols.CROSS}]", Colors.RED)
        elif status:
            status_str = self._c(f" [{status}]", Colors.DIM)

        self.print(f"    {Symbols.DOT} {text}{status_str}")

    def table(self, headers: list[str], rows: list[list[str]]) -> None:
        if self.quiet:
            return
        widths = [len(h) for h in headers]
        for row in rows:
            for i, cell in enumerate(row):
                if i < len(widths):
                    widths[i] = max(widths[i], len(str(cell)))

        header_line = "  " + "  ".join(
            self._c(h.ljust(widths[i]), Colors.BOLD) for i, h in enumerate(headers)
        )
        self.print(header_line)
        self.print("  " + "  ".join("-" * w for w in widths))

        for row in rows:
            self.print(
                "  "
                + "  ".join(
                    str(cell).ljust(widths[i]) if i < len(widths) else str(cell)
                    for i, cell in enumerate(row)
                )
            )

    def progress(self, current: int, total: int, message: str = "") -> None:
        """Print a progress line; updates in place on interactive terminals."""
        if self.quiet or total <= 0:
            return

        width = 30
        filled = int(width * current / total)
        bar = "█" * filled + "░" * (width - filled)
        pct = int(100 * current / total)

        if sys.stdout.isatty():
            sys.stdout.write(f"\r  [{bar}] {pct:>3}% {message:<40.40}")
            sys.stdout.flush()
            if current >= total:
                self.print()
        else:
            self.print(f"  [{bar}] {pct:>3}% {message}")

    def dry_run_banner(self) -> None:
        if self.quiet:
            return
        self.print()
        banner = f"  {Symbols.GEAR} DRY-RUN MODE - No changes will be made"
        if self.color:
            self.print(f"{Colors.BG_YELLOW}{Colors.BOLD}{banner}{Colors.RESET}")
        else:
            self.print(f"*** {banner} ***")
        self.print()

    def _print_limited(self, lines: list[str]) -> None:
        for line in lines[: self.MAX_LISTED]:
            self.detail(line)
        if len(lines) > self.MAX_LISTED:
            self.detail(f"... and {len(lines) - self.MAX_LISTED} more")

    def sync_result(self, result: SyncResult) -> None:
        """
        Print a sync result summary.

        JSON mode prints one structured object; quiet mode prints a single
        key=value line suitable for CI.
        """
        if self.json_mode:
            output = {
                "success": result.success,
                "tag": result.tag,
                "dry_run": result.dry_run,
                "mode": result.mode,
                "stats": {
                    "created": result.created,
                    "updated": result.updated,
                    "deleted": result.deleted,
                    "skipped": result.skipped,
                    "unchanged": result.unchanged,
                    "total_tasks": result.total_tasks,
                },
                "fields_created": result.fields_created,
                "planned_operations": result.planned_operations,
                "errors": result.errors + self._json_errors,
                "warnings": result.warnings,
                "duration_seconds": round(result.duration_seconds, 3),
            }
            if result.failed_operations:
                output["failed_operations"] = [
                    {
                        "operation": op.operation,
                        "task_id": op.task_id,
                        "item_id": op.item_id,
                        "error": op.error,
                    }
                    for op in result.failed_operations
                ]
            print(json.dumps(output, indent=2))
            return

        if self.quiet:
            status = "OK" if result.success else "FAILED"
            mode = "dry-run" if result.dry_run else result.mode
            parts = [
                f"status={status}",
                f"tag={result.tag}",
                f"mode={mode}",
                f"created={result.created}",
                f"updated={result.updated}",
                f"deleted={result.deleted}",
            ]
            if result.errors:
                parts.append(f"errors={len(result.errors)}")
            print(" ".join(parts))
            for e in result.errors:
                print(f"ERROR: {e}")
            return

        self.section("Sync Complete")
        self.print()

        if result.dry_run:
            self.print(self._c(f"  {Symbols.GEAR} Mode: DRY-RUN (no changes made)", Colors.YELLOW))
        else:
            self.print(self._c(f"  {Symbols.CHECK} Mode: {result.mode.upper()} SYNC", Colors.GREEN))
        self.print()

        stats = [
            ["Tasks", str(result.total_tasks)],
            ["Created", str(result.created)],
            ["Updated", str(result.updated)],
            ["Deleted", str(result.deleted)],
        ]
        if result.mode == "delta":
            stats.append(["Unchanged", str(result.unchanged)])
        if result.dry_run:
            stats.append(["Planned", str(result.skipped)])
        self.table(["Metric", "Count"], stats)

        if result.fields_created:
            self.print()
            self.info(f"Fields created: {', '.join(result.fields_created)}")

        if result.planned_operations:
            self.print()
            self.info(f"{len(result.planned_operations)} planned operation(s):")
            self._print_limited(result.planned_operations)

        if result.warnings:
            self.print()
            self.warning(f"{len(result.warnings)} warning(s):")
            self._print_limited(result.warnings)

        if result.errors:
            self.print()
            self.error(f"{len(result.errors)} error(s):")
            self._print_limited(result.errors)

        self.print()
        if result.success:
            self.success(f"Sync completed in {result.duration_seconds:.1f}s")
        else:
            self.error("Sync completed with errors")

    def setup_result(self, result: SetupResult) -> None:
        if self.json_mode:
            output = {
                "success": True,
                "project_id": result.project_id,
                "fields_created": result.fields_created,
                "options_added": result.options_added,
                "warnings": result.warnings,
            }
            print(json.dumps(output, indent=2))
            return

        if self.quiet:
            print(
                f"status=OK fields_created={len(result.fields_created)} options_added={len(result.options_added)}"
            )
            return

        self.section("Project Setup")
        for name in result.fields_created:
            self.item(f"Field '{name}'", "ok")
        for name in result.options_added:
            self.item(f"Status option '{name}'", "ok")
        if not result.fields_created and not result.options_added:
            self.info("Project already has every required field and status option")

        if result.warnings:
            self.print()
            self.warning(f"{len(result.warnings)} warning(s):")
            self._print_limited(result.warnings)

        self.print()
        self.success(f"Project {result.project_id} is ready to sync")

    def cleanup_result(self, result: CleanupResult) -> None:
        """
        Print a duplicate analysis and, after ``--delete``, what was removed.

        Every duplicate group is listed in full; only the redundant items are
        deleted.
        """
        report = result.report
        if self.json_mode:
            output = {
                "success": result.success,
                "dry_run": result.dry_run,
                "total_items": report.total_items,
                "without_identity": [item.id for item in report.without_identity],
                "by_identity": {key: [item.id for item in group] for key, group in report.by_identity.items()},
                "by_title": {key: [item.id for item in group] for key, group in report.by_title.items()},
                "redundant": [item.id for item in report.redundant],
                "deleted": result.deleted,
                "errors": result.errors + self._json_errors,
            }
            print(json.dumps(output, indent=2))
            return

        if self.quiet:
            status = "OK" if result.success else "FAILED"
            print(
                f"status={status} items={report.total_items} redundant={len(report.redundant)} "
                f"deleted={len(result.deleted)}"
            )
            for e in result.errors:
                print(f"ERROR: {e}")
            return

        self.section("Duplicate Analysis")
        self.info(f"{report.total_items} item(s) in the project")

        if report.without_identity:
            self.print()
            self.warning(f"{len(report.without_identity)} item(s) without a task id:")
            self._print_limited([f"{item.title} ({item.id})" for item in report.without_identity])

        if report.by_identity:
            self.print()
            self.warning(f"{len(report.by_identity)} task id(s) on more than one item:")
            for identity, group in report.by_identity.items():
                self.item(f"Task {identity}: {len(group)} items")
                self._print_limited([f"{item.title} ({item.id})" for item in group])

        if report.by_title:
            self.print()
            self.warning(f"{len(report.by_title)} title(s) on more than one item:")
            for title, group in report.by_title.items():
                self.item(f"'{title}': {len(group)} items")

        self.print()
        if report.is_clean:
            self.success("No duplicates found")
            return
        if not report.redundant:
            self.info("Nothing can be removed automatically")
            return

        if result.dry_run:
            self.info(f"{len(report.redundant)} redundant item(s):")
            self._print_limited([f"{item.title} ({item.id})" for item in report.redundant])
            self.detail("Run with --delete to remove these duplicates")
            return

        if result.deleted:
            self.success(f"Deleted {len(result.deleted)} duplicate item(s)")
        if result.errors:
            self.error(f"{len(result.errors)} item(s) could not be deleted:")
            self._print_limited(result.errors)

    def json_errors(self) -> None:
        """Print collected errors as JSON, for runs that ended before a result existed."""
        if self.json_mode and self._json_errors:
            print(json.dumps({"success": False, "errors": self._json_errors}, indent=2))
