"""
Command-line interface for openclaw-packager.

Provides the export, import and inspect commands. The engines in
openclaw_packager.backup return result objects; this module turns them into
console output and exit codes and is the only place that exits the process.

Uses Python's argparse module (no external CLI libraries).
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, NoReturn

from openclaw_packager import __version__
from openclaw_packager.backup import (
    ArchiveExporter,
    ArchiveImporter,
    ExportOptions,
    FileAction,
    ImportMode,
    ImportOptions,
    inspect_archive,
)
from openclaw_packager.backup.exporter import default_output_path
from openclaw_packager.config.settings import ConfigurationError, Settings, load_config
from openclaw_packager.exclusions import DEFAULT_POLICY, ExclusionPolicy
from openclaw_packager.manifest import format_size
from openclaw_packager.paths import (
    STATE_DIR_ENV,
    StateDirectoryNotFoundError,
    derive_paths,
    resolve_state_root,
)

# Set up logging
logger = logging.getLogger(__name__)

# Global verbosity settings (set during main() based on args)
_quiet_mode = False
_verbose_level = 0

CHECKLIST_LIMIT = 5


def set_output_mode(quiet: bool = False, verbose: int = 0) -> None:
    """
    Set the output mode for the CLI.

    Args:
        quiet: If True, suppress non-essential output.
        verbose: Verbosity level (0=normal, 1+=verbose).
    """
    global _quiet_mode, _verbose_level
    _quiet_mode = quiet
    _verbose_level = verbose


def output(message: str = "", force: bool = False) -> None:
    """
    Print a message to stdout, respecting quiet mode.

    Args:
        message: The message to print.
        force: If True, print even in quiet mode.
    """
    if force or not _quiet_mode:
        print(message)


def output_verbose(message: str, level: int = 1) -> None:
    """Print a message only if verbosity is high enough."""
    if _verbose_level >= level and not _quiet_mode:
        print(message)


def output_error(message: str) -> None:
    """Print an error message (always shown, even in quiet mode)."""
    print(message, file=sys.stderr)


def output_table(items: list[tuple[str, Any]]) -> None:
    """Print aligned key/value rows."""
    if not items:
        return
    width = max(len(key) for key, _ in items)
    for key, value in items:
        output(f"  {key.ljust(width)}  {value}")


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="openclaw-packager",
        description="Export and import OpenClaw bot configurations",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"openclaw-packager {__version__}",
    )

    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Override settings file location (default: ~/.openclaw-packager/config.yaml)",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase output verbosity (can be repeated)",
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress non-essential output",
    )

    subparsers = parser.add_subparsers(
        title="commands",
        dest="command",
        metavar="<command>",
    )

    # export command
    export_parser = subparsers.add_parser(
        "export",
        help="Export OpenClaw configuration to a zip file",
        description="Create a portable archive of config, cron jobs, agents and workspace.",
    )
    export_parser.add_argument(
        "--output", "-o",
        metavar="PATH",
        help="Output file path (default: ./openclaw-export-<timestamp>.zip)",
    )
    for name, dest, what in (
        ("workspace", "workspace", "workspace files"),
        ("cron", "cron", "cron jobs"),
        ("config", "config_category", "openclaw.json config"),
        ("agents", "agents", "agent definitions"),
        ("memory", "memory", "MEMORY.md and memory/ folder"),
    ):
        export_parser.add_argument(
            f"--{name}",
            action=argparse.BooleanOptionalAction,
            dest=dest,
            default=True,
            help=f"Include {what} (default: yes)",
        )
    export_parser.add_argument(
        "--agent",
        nargs="+",
        metavar="NAME",
        dest="agent_filter",
        help="Export only specific agents (e.g. --agent main worker)",
    )
    export_parser.add_argument(
        "--auth",
        action="store_true",
        help="Include auth-profiles.json and credentials/ (default: no)",
    )
    export_parser.add_argument(
        "--include-secrets",
        action="store_true",
        dest="include_secrets",
        help="Include actual secret values (tokens, keys)",
    )
    export_parser.add_argument(
        "--include-projects",
        action="store_true",
        dest="include_projects",
        default=None,
        help="Include workspace/projects/ and other bulky folders (excluded by default)",
    )
    export_parser.add_argument(
        "--stdout",
        action="store_true",
        help="Write the zip to stdout (for SSH piping)",
    )
    export_parser.add_argument(
        "--dry-run",
        action="store_true",
        dest="dry_run",
        help="Preview what would be exported",
    )
    export_parser.set_defaults(func=cmd_export)

    # import command
    import_parser = subparsers.add_parser(
        "import",
        help="Import OpenClaw configuration from a backup zip",
        description="Restore an export archive, preserving existing files unless --force is given.",
    )
    import_parser.add_argument(
        "file",
        metavar="FILE",
        help="Path to export archive (.zip)",
    )
    import_parser.add_argument(
        "--dry-run",
        action="store_true",
        dest="dry_run",
        help="Preview what would change",
    )
    mode_group = import_parser.add_mutually_exclusive_group()
    mode_group.add_argument(
        "--merge",
        action="store_true",
        help="Add missing files, skip existing (default)",
    )
    mode_group.add_argument(
        "--force",
        action="store_true",
        help="Overwrite all existing files",
    )
    import_parser.add_argument(
        "--target",
        metavar="PATH",
        help="Target OpenClaw directory (default: detected, e.g. ~/.openclaw)",
    )
    import_parser.add_argument("--skip-workspace", action="store_true", help="Skip workspace files")
    import_parser.add_argument("--skip-cron", action="store_true", help="Skip cron jobs")
    import_parser.add_argument("--skip-config", action="store_true", help="Skip config")
    import_parser.add_argument("--skip-agents", action="store_true", help="Skip agent files")
    import_parser.set_defaults(func=cmd_import)

    # inspect command
    inspect_parser = subparsers.add_parser(
        "inspect",
        help="Show contents of a backup without importing",
        description="Validate an archive and summarize its manifest and entries.",
    )
    inspect_parser.add_argument(
        "file",
        metavar="FILE",
        help="Path to export archive (.zip)",
    )
    inspect_parser.set_defaults(func=cmd_inspect)

    return parser


def setup_logging(verbose: int, quiet: bool, default_level: str = "INFO") -> None:
    """Configure logging based on verbosity level."""
    if quiet:
        level = logging.WARNING
    elif verbose == 0:
        level = getattr(logging, default_level, logging.INFO)
    else:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def _settings(args: argparse.Namespace) -> Settings:
    settings = getattr(args, "settings", None)
    if settings is None:
        config_path = Path(args.config) if getattr(args, "config", None) else None
        settings = load_config(config_path)
    return settings


def _policy_for(settings: Settings) -> ExclusionPolicy:
    extra = settings.exclusions
    return DEFAULT_POLICY.extended(
        dirs=extra.extra_dirs,
        files=extra.extra_files,
        workspace_dirs=extra.extra_workspace_dirs,
    )


def _mark(included: bool) -> str:
    return "✓" if included else "○"


def cmd_export(args: argparse.Namespace) -> int:
    """Export the OpenClaw state directory."""
    settings = _settings(args)

    if args.stdout:
        # Only archive bytes may reach stdout
        set_output_mode(quiet=True, verbose=_verbose_level)

    try:
        paths = resolve_state_root()
    except StateDirectoryNotFoundError as e:
        output_error(f"Error: {e}")
        output_error("  Make sure OpenClaw is installed.")
        return 1

    include_projects = args.include_projects
    if include_projects is None:
        include_projects = settings.export.include_projects

    options = ExportOptions(
        workspace=args.workspace,
        cron=args.cron,
        config=args.config_category,
        agents=args.agents,
        memory=args.memory,
        auth=args.auth,
        include_secrets=args.include_secrets,
        include_projects=include_projects,
        agent_filter=args.agent_filter,
        compression_level=settings.export.compression_level,
    )
    exporter = ArchiveExporter(paths, options, _policy_for(settings))

    output("OpenClaw Backup Export")
    output("=" * 50)
    output(f"Source: {paths.root}")
    output()

    if args.dry_run:
        return _render_export_preview(exporter)

    if args.stdout:
        result = exporter.export(stream=sys.stdout.buffer)
    else:
        output_path = Path(args.output) if args.output else default_output_path(settings.output_dir)
        result = exporter.export(output_path)

    if not result.success:
        output_error(f"Export failed: {result.error}")
        return 1

    stats = result.stats
    output("Export complete!")
    output()
    output(f"  Created: {result.path}")
    output(f"  Files: {stats.total_files}")
    output(f"  Size: {format_size(stats.total_size)}")
    if stats.files_unreadable:
        output_verbose(f"  Unreadable files skipped: {stats.files_unreadable}")
    if not options.include_secrets and stats.secrets_stripped > 0:
        output()
        output(f"⚠ Secrets stripped: {stats.secrets_stripped} values replaced with placeholders")
        output("  Use --include-secrets to include actual values")
    return 0


def _render_export_preview(exporter: ArchiveExporter) -> int:
    preview = exporter.preview()
    stats = preview.stats
    options = preview.options
    categories = stats.categories

    output("Dry Run - Preview")
    output("(No files will be created)")
    output()

    if "config" in categories:
        output(f"✓ Config: openclaw.json ({format_size(categories['config'].size)})")
    if "cron" in categories:
        output(f"✓ Cron: {stats.cron_jobs} jobs ({format_size(categories['cron'].size)})")
    if options.agents:
        output(f"✓ Agents: {', '.join(preview.agents) or 'none'}")
        if "agents" in categories:
            totals = categories["agents"]
            output(f"  {totals.files} files ({format_size(totals.size)})")
    if "workspace" in categories:
        totals = categories["workspace"]
        output(f"✓ Workspace: {totals.files} files ({format_size(totals.size)})")
        if stats.skills > 0:
            output(f"  Skills: {stats.skills}")
    if options.workspace and not options.include_projects:
        output("  Projects excluded (use --include-projects to include)")
    if options.memory:
        output("✓ Memory: MEMORY.md + memory/ folder")
    if options.auth:
        totals = categories.get("credentials")
        extra = f" ({totals.files} credential files)" if totals else ""
        output(f"✓ Auth: auth-profiles.json + credentials/{extra}")
    else:
        output("○ Auth: excluded (use --auth to include)")
    if options.include_secrets:
        output("⚠ Secrets: INCLUDED (real tokens/keys will be in export)")
    else:
        output("✓ Secrets: stripped (placeholders used)")

    output()
    output("Summary")
    output(f"  Total files: ~{stats.total_files}")
    output(f"  Total size: ~{format_size(stats.total_size)}")
    output()
    output("  Run without --dry-run to create the export.")
    return 0


def cmd_import(args: argparse.Namespace) -> int:
    """Import an export archive."""
    if args.target:
        target = derive_paths(Path(args.target).expanduser())
    else:
        try:
            target = resolve_state_root()
        except StateDirectoryNotFoundError:
            output_error("Error: Could not find OpenClaw directory")
            output_error(f"  Use --target to specify the destination (or set {STATE_DIR_ENV})")
            return 1

    mode = ImportMode.FORCE if args.force else ImportMode.MERGE
    options = ImportOptions(
        mode=mode,
        skip_workspace=args.skip_workspace,
        skip_cron=args.skip_cron,
        skip_config=args.skip_config,
        skip_agents=args.skip_agents,
        dry_run=args.dry_run,
    )

    result = ArchiveImporter(Path(args.file), target, options).run()
    if result.manifest is None:
        output_error(f"Error: {result.error}")
        return 1

    manifest = result.manifest
    plan = result.plan

    output("OpenClaw Backup Import")
    output("=" * 50)
    output(f"Source: {Path(args.file).name}")
    output(f"Target: {target.root}")
    output(
        "Mode: force (overwrite)" if mode is ImportMode.FORCE else "Mode: merge (preserve existing)"
    )
    output(f"Installation: {'fresh' if result.fresh_install else 'existing'}")
    if args.dry_run:
        output("(Dry run - no files will be modified)")
    output()

    output("Import Plan")
    if plan is not None:
        if plan.config:
            output("  ✓ Config: openclaw.json")
        if plan.cron:
            output(f"  ✓ Cron: {manifest.stats.cron_jobs or 0} jobs")
        if plan.workspace:
            output("  ✓ Workspace: files")
        if plan.agents:
            output(f"  ✓ Agents: {', '.join(manifest.includes.agents)}")
        if plan.credentials:
            output("  ✓ Credentials")
    for flag, label in (
        (args.skip_config, "Config"),
        (args.skip_cron, "Cron"),
        (args.skip_workspace, "Workspace"),
        (args.skip_agents, "Agents"),
    ):
        if flag:
            output(f"  ○ {label}: skipped")
    output()

    stats = result.stats

    if result.dry_run:
        output("Files")
        for action, name in result.actions:
            output(f"  {action.value:<9}  {name}")
        output()
        output("Summary")
        output(f"  Would write: {stats.files_written} files")
        output(f"  Would skip: {stats.files_skipped} files")
        output(f"  Would overwrite: {stats.files_overwritten} files")
        output()
        output("  Run without --dry-run to perform the import.")
        return 0

    for action, name in result.actions:
        if action is not FileAction.SKIP:
            output_verbose(f"  {action.value:<9}  {name}")

    if not result.success:
        output_error(f"Import failed: {result.error}")
        output_error(
            f"  {stats.files_written} written and {stats.files_overwritten} overwritten "
            "before the failure were left in place"
        )
        return 1

    output("Import Complete")
    output(f"  Files written: {stats.files_written}")
    if stats.files_skipped > 0:
        output(f"  Skipped (existing): {stats.files_skipped}")
    if stats.files_overwritten > 0:
        output(f"  Overwritten: {stats.files_overwritten}")
    if stats.cron_jobs_added > 0 or stats.cron_jobs_skipped > 0:
        output(f"  Cron jobs: {stats.cron_jobs_added} added, {stats.cron_jobs_skipped} skipped")
    if stats.config_keys_added > 0:
        output(f"  Config keys added: {stats.config_keys_added}")
    for warning in stats.warnings:
        output(f"  ⚠ {warning}")

    if result.needs_secrets:
        _render_secrets_checklist(result.secrets_template)

    output()
    output("Next Steps")
    output("  1. Fill in any missing API keys/tokens")
    output("  2. Run: openclaw doctor")
    output("  3. Run: openclaw gateway start")
    return 0


def _render_secrets_checklist(template: Any) -> None:
    output()
    output("⚠ Secrets Not Included")
    output("The export had secrets stripped. You need to fill in:")

    if template is None:
        output("  See SECRETS_TEMPLATE.json in the archive for details")
        return

    if template.config:
        output()
        output("  Config (openclaw.json):")
        for key in list(template.config)[:CHECKLIST_LIMIT]:
            output(f"    - {key}")

    if template.credentials:
        output()
        output("  Credentials (recreate these files):")
        for cred in template.credentials[:CHECKLIST_LIMIT]:
            output(f"    - credentials/{cred}")

    if template.agent_auth:
        output()
        output("  Agent Auth:")
        for agent, kinds in template.agent_auth.items():
            output(f"    - {agent}: {', '.join(kinds)}")


def _format_timestamp(value: str) -> str:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return value
    return parsed.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _include_line(name: str, included: bool, detail: str | None = None) -> str:
    extra = f" ({detail})" if detail else ""
    return f"  {_mark(included)} {name}{extra}"


def cmd_inspect(args: argparse.Namespace) -> int:
    """Show the contents of an archive without importing it."""
    settings = _settings(args)
    result = inspect_archive(Path(args.file), preview_limit=settings.inspect.preview_limit)

    if not result.success or result.manifest is None:
        output_error(f"Error: {result.error}")
        return 1

    manifest = result.manifest
    inc = manifest.includes
    stats = manifest.stats

    output("OpenClaw Backup Archive")
    output("=" * 50)
    output(f"File: {Path(args.file).name}")
    output(f"Size: {format_size(result.archive_size)}")
    output()

    output("Export Info")
    info: list[tuple[str, Any]] = [
        ("Tool Version", manifest.version),
        ("Exported", _format_timestamp(manifest.exported_at)),
        ("Platform", manifest.platform),
        ("Runtime", manifest.runtime_version),
    ]
    if manifest.openclaw_version:
        info.append(("OpenClaw", manifest.openclaw_version))
    output_table(info)
    output()

    output("Contents")
    output(_include_line("Config", inc.config))
    output(_include_line("Cron", inc.cron, f"{stats.cron_jobs} jobs" if stats.cron_jobs else None))
    output(
        _include_line("Workspace", inc.workspace, f"{stats.total_files} files" if stats.total_files else None)
    )
    output(_include_line("Memory", inc.memory))
    output(_include_line("Agents", bool(inc.agents), ", ".join(inc.agents) or None))
    output(_include_line("Auth", inc.auth))
    output()

    output("Security")
    if manifest.secrets_included:
        output("  ⚠ Secrets INCLUDED - contains real tokens/keys")
    else:
        output(f"  ✓ Secrets stripped: {manifest.secrets_stripped} values replaced")
        if result.has_secrets_template:
            output("  See SECRETS_TEMPLATE.json for required values")
    output()

    output("Stats")
    rows: list[tuple[str, Any]] = [
        ("Total Files", stats.total_files),
        ("Total Size", stats.total_size),
    ]
    if stats.cron_jobs:
        rows.append(("Cron Jobs", stats.cron_jobs))
    if stats.skills:
        rows.append(("Skills", stats.skills))
    if stats.agents:
        rows.append(("Agents", stats.agents))
    output_table(rows)
    output()

    output(f"File List (first {result.preview_limit})")
    for entry in result.preview:
        flag = " *" if entry.sensitive else ""
        output(f"  {format_size(entry.size):>8}  {entry.name}{flag}")
    if result.remaining:
        output(f"  ... and {result.remaining} more files")
    return 0


def main(argv: list[str] | None = None) -> NoReturn:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    try:
        args.settings = _settings(args)
    except ConfigurationError as e:
        output_error(f"Configuration error: {e}")
        sys.exit(2)

    # Set up logging and output mode
    setup_logging(args.verbose, args.quiet, args.settings.log_level)
    set_output_mode(args.quiet, args.verbose)

    try:
        exit_code = args.func(args)
        sys.exit(exit_code)
    except KeyboardInterrupt:
        output_error("\nOperation cancelled.")
        sys.exit(130)
    except Exception as e:
        if args.verbose > 0:
            raise
        output_error(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
