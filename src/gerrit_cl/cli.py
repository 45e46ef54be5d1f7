"""
Command-line interface for the Gerrit changelist tool.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
import os
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.tree import Tree

from .chain_manager import ChainManager
from .cli_prompt import CliPrompt
from .config import Settings, default_topic, parse_emails
from .gerrit import remote_for_host, validate_host
from .git_manager import GitManager
from .metadata_store import BranchMetadataStore
from .models import CLError, PresubmitType, ReviewOptions
from .review import Review, ReviewResult
from . import __version__ as PACKAGE_VERSION


console = Console()
logger = logging.getLogger(__name__)

LOG_ENV_VAR = "GERRIT_CL_LOG"


def _print_version(ctx, param, value):
    """Eager option callback to print version and exit."""
    if not value or ctx.resilient_parsing:
        return
    click.echo(f"gerrit-cl {PACKAGE_VERSION}")
    ctx.exit()


def _default_log_path() -> Path:
    """Determine default log file path (~/.gerrit-cl/gerrit-cl.log)."""
    env_path = os.environ.get(LOG_ENV_VAR)
    if env_path:
        p = Path(env_path).expanduser()
        p.parent.mkdir(parents=True, exist_ok=True)
        return p
    base = Path.home() / ".gerrit-cl"
    base.mkdir(parents=True, exist_ok=True)
    return base / "gerrit-cl.log"


class SafeConsoleFilter(logging.Filter):
    """Replace characters the console encoding cannot represent.

    Git output quoted in log messages may contain arbitrary bytes; file
    handlers keep full UTF-8, only console output is sanitized.
    """

    def __init__(self, encoding: Optional[str] = None):
        super().__init__()
        self.encoding = encoding or getattr(sys.stderr, "encoding", None) or "utf-8"

    def filter(self, record: logging.LogRecord) -> bool:  # always keep the record
        message = record.getMessage()
        try:
            message.encode(self.encoding, errors="strict")
        except UnicodeEncodeError:
            record.msg = message.encode(self.encoding, errors="replace").decode(self.encoding, errors="replace")
            record.args = ()
        return True


def setup_logging(verbose: bool = False, console_level: Optional[str] = None, log_file: Optional[Path] = None) -> Path:
    """Setup logging with a per-run file plus a rotated aggregate log.

    - Per-run log file: <stem>-YYYYMMDD_HHMMSS.log
    - Aggregate log: <stem>.log (rotated)
    - Console logging only with --verbose or --log-level

    Returns the aggregate log path to show to the user.
    """
    provided = Path(log_file) if log_file else _default_log_path()
    if provided.exists() and provided.is_dir():
        base_dir = provided
        base_stem = "gerrit-cl"
        aggregate_path = base_dir / f"{base_stem}.log"
    else:
        base_dir = provided.parent
        base_stem = provided.stem or "gerrit-cl"
        aggregate_path = provided
    base_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    per_run_path = base_dir / f"{base_stem}-{timestamp}.log"

    root = logging.getLogger()
    # Clear existing handlers to avoid duplication in tests / repeated invocations
    root.handlers.clear()
    root.setLevel(logging.DEBUG)

    file_fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    run_file_handler = logging.FileHandler(str(per_run_path), encoding="utf-8")
    run_file_handler.setLevel(logging.DEBUG)
    run_file_handler.setFormatter(file_fmt)
    root.addHandler(run_file_handler)

    aggregate_handler = RotatingFileHandler(
        str(aggregate_path), maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    aggregate_handler.setLevel(logging.DEBUG)
    aggregate_handler.setFormatter(file_fmt)
    root.addHandler(aggregate_handler)

    # GitPython logs every command at DEBUG; keep that out of the console
    logging.getLogger("git").setLevel(logging.INFO)

    if verbose or console_level:
        level_map = {
            "debug": logging.DEBUG,
            "info": logging.INFO,
            "warning": logging.WARNING,
            "error": logging.ERROR,
        }
        ch_level = level_map.get((console_level or "info").lower(), logging.INFO)
        console_handler = RichHandler(console=console, rich_tracebacks=True)
        console_handler.setLevel(ch_level)
        console_handler.setFormatter(logging.Formatter("%(message)s"))
        console_handler.addFilter(SafeConsoleFilter(getattr(console.file, "encoding", None)))
        root.addHandler(console_handler)

    return aggregate_path


def _maybe_print_log_notice(ctx: click.Context) -> None:
    """Inform user about logging destination and how to enable console logs."""
    if ctx.obj.get("verbose") or ctx.obj.get("console_level"):
        return
    console.print(
        f"[dim]Logs are written to {ctx.obj.get('log_path')}. Use -v or --log-level to see them here.[/dim]"
    )


def _report_cl_error(title: str, error: CLError) -> None:
    console.print(f"\n❌ **{title}:** {escape(str(error))}", style="bold red")
    # Debug stack trace to file logs for diagnostics
    logger.debug(f"{title} ({error.kind.value})", exc_info=True)
    sys.exit(1)


def _report_cancelled() -> None:
    console.print("\n\n🚫 **Operation cancelled by user**", style="bold yellow")
    logger.debug("Operation cancelled by user", exc_info=True)
    sys.exit(130)


def _report_unexpected(ctx: click.Context, error: Exception) -> None:
    console.print(f"\n💥 **Unexpected Error:** {escape(str(error))}", style="bold red")
    if ctx.obj.get("verbose"):
        console.print_exception()
    logger.debug("Unexpected error", exc_info=True)
    sys.exit(1)


def _chain_manager(ctx: click.Context, remote_branch: Optional[str] = None) -> ChainManager:
    git_manager = GitManager(ctx.obj.get("repo_path"))
    settings = Settings.load(git_manager)
    return ChainManager(
        git_manager,
        BranchMetadataStore(git_manager.git_dir()),
        remote=settings.remote,
        remote_branch=remote_branch or settings.remote_branch,
    )


@click.group()
@click.option(
    "--version",
    "-V",
    is_flag=True,
    callback=_print_version,
    expose_value=False,
    is_eager=True,
    help="Show version and exit.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose console logging (INFO)")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Console log level. By default, console logging is disabled.",
)
@click.option(
    "--repo-path",
    type=click.Path(exists=True, path_type=Path),
    help="Path to repository (defaults to current directory)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, log_level: Optional[str], repo_path: Optional[Path]) -> None:
    """Gerrit changelist tool - manage dependent branches and mail them for review."""
    log_path = setup_logging(verbose, console_level=log_level)

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["console_level"] = log_level
    ctx.obj["log_path"] = log_path
    ctx.obj["repo_path"] = repo_path.resolve() if isinstance(repo_path, Path) else None
    logger.debug(f"CLI init: cwd={Path.cwd()} repo_path={ctx.obj['repo_path']}")


@cli.command()
@click.argument("name")
@click.pass_context
def new(ctx: click.Context, name: str) -> None:
    """
    Create a new changelist branch NAME that depends on the current branch.

    Example: gerrit-cl new feature2
    """
    try:
        _maybe_print_log_notice(ctx)
        manager = _chain_manager(ctx)
        manager.new_cl(name)
        chain = " → ".join(manager.resolve_chain(name) + [name])
        console.print(f"\n🌱 **Created changelist** {name}", style="bold green")
        console.print(f"Dependency chain: {chain}")
    except CLError as e:
        _report_cl_error("New Changelist Error", e)
    except (click.Abort, KeyboardInterrupt):
        _report_cancelled()
    except Exception as e:
        _report_unexpected(ctx, e)


@cli.command()
@click.option("--remote-branch", default=None, help="Upstream branch of the chain (default: master)")
@click.pass_context
def sync(ctx: click.Context, remote_branch: Optional[str]) -> None:
    """Bring the current branch and its ancestors up to date with upstream."""
    try:
        _maybe_print_log_notice(ctx)
        manager = _chain_manager(ctx, remote_branch)
        chain = manager.sync()
        console.print(f"\n🔄 **Synced** {' → '.join(chain)}", style="bold green")
    except CLError as e:
        _report_cl_error("Sync Error", e)
    except (click.Abort, KeyboardInterrupt):
        _report_cancelled()
    except Exception as e:
        _report_unexpected(ctx, e)


@cli.command()
@click.argument("branches", nargs=-1, required=True)
@click.option("--force", "-f", is_flag=True, help="Ignore unmerged changes")
@click.option("--remote-branch", default=None, help="Branch the changes were merged into (default: master)")
@click.pass_context
def cleanup(ctx: click.Context, branches: tuple[str, ...], force: bool, remote_branch: Optional[str]) -> None:
    """
    Delete BRANCHES whose changes have been merged upstream.

    Example: gerrit-cl cleanup feature1 feature2
    """
    try:
        _maybe_print_log_notice(ctx)
        manager = _chain_manager(ctx, remote_branch)
        manager.cleanup(list(branches), force=force)
        for branch in branches:
            console.print(f"🧹 Deleted {branch}", style="bold green")
    except CLError as e:
        _report_cl_error("Cleanup Error", e)
    except (click.Abort, KeyboardInterrupt):
        _report_cancelled()
    except Exception as e:
        _report_unexpected(ctx, e)


@cli.command()
@click.pass_context
def chain(ctx: click.Context) -> None:
    """Show the dependency chain of the current branch."""
    try:
        manager = _chain_manager(ctx)
        branch = manager.git_manager.get_current_branch()
        status = manager.chain_status(branch)

        tree = Tree(f"📁 [bold]{status.upstream or branch}[/bold] (upstream)")
        node = tree
        for name in status.ancestors[1:] + ([branch] if status.upstream else []):
            mark = "📮 mailed" if status.is_exported(name) else "📝 not mailed"
            style = "green" if name == branch else "cyan"
            node = node.add(f"[{style}]{name}[/{style}] [dim]{mark}[/dim]")
        console.print(tree)
    except CLError as e:
        _report_cl_error("Chain Error", e)
    except Exception as e:
        _report_unexpected(ctx, e)


@cli.command()
@click.option("--autosubmit", is_flag=True, help="Automatically submit the changelist when it is ready")
@click.option("--cc", "ccs", default="", help="Comma-separated list of emails or user names to cc")
@click.option("--draft", "-d", is_flag=True, help="Send a draft changelist")
@click.option("--edit/--no-edit", default=True, help="Edit the review message before sending")
@click.option("--host", default=None, help="Gerrit host to use (e.g. https://review.example.com)")
@click.option("--message", "-m", default="", help="Commit message to use for the review")
@click.option(
    "--commit-message-body-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="File whose contents replace the body of the commit message",
)
@click.option(
    "--presubmit",
    type=click.Choice(PresubmitType.names()),
    default=PresubmitType.ALL.value,
    help="Type of presubmit tests to run",
)
@click.option("--remote-branch", default=None, help="Upstream branch to send the review against")
@click.option("--reviewers", "-r", default="", help="Comma-separated list of emails or user names")
@click.option("--topic", default=None, help="Review topic (default: <user>-<branch>)")
@click.option(
    "--set-topic/--no-set-topic",
    default=None,
    help="Set the review topic (default: on when a Gerrit host is known)",
)
@click.option(
    "--check-uncommitted/--no-check-uncommitted",
    default=True,
    help="Refuse to mail with uncommitted changes",
)
@click.option("--verify/--no-verify", default=True, help="Run pre-push git hooks")
@click.option(
    "--gerrit-remote",
    default=None,
    help="Remote name or URL to push to (default: derived from --host, else the fetch remote)",
)
@click.option("--dry-run", is_flag=True, help="Build the review branch without pushing it")
@click.pass_context
def mail(
    ctx: click.Context,
    autosubmit: bool,
    ccs: str,
    draft: bool,
    edit: bool,
    host: Optional[str],
    message: str,
    commit_message_body_file: Optional[Path],
    presubmit: str,
    remote_branch: Optional[str],
    reviewers: str,
    topic: Optional[str],
    set_topic: Optional[bool],
    check_uncommitted: bool,
    verify: bool,
    gerrit_remote: Optional[str],
    dry_run: bool,
) -> None:
    """
    Squash the current branch into a single commit and mail it to Gerrit.

    Example: gerrit-cl mail -r alice,bob --presubmit=none
    """
    try:
        _maybe_print_log_notice(ctx)
        git_manager = GitManager(ctx.obj.get("repo_path"))
        settings = Settings.load(git_manager)
        host = host or settings.host
        if host:
            host = validate_host(host)
        if gerrit_remote is None and host:
            gerrit_remote = remote_for_host(host, git_manager.remote_url(settings.remote))
        branch = git_manager.get_current_branch()

        options = ReviewOptions(
            branch=branch,
            remote_branch=remote_branch or settings.remote_branch,
            remote=settings.remote,
            gerrit_remote=gerrit_remote,
            host=host,
            topic=topic or default_topic(branch),
            draft=draft,
            autosubmit=autosubmit,
            presubmit=PresubmitType(presubmit),
            reviewers=tuple(parse_emails(reviewers, settings.email_domain)),
            ccs=tuple(parse_emails(ccs, settings.email_domain)),
            edit=edit,
            message=message or None,
            message_body=commit_message_body_file.read_text(encoding="utf-8")
            if commit_message_body_file
            else None,
            verify=verify,
            set_topic=bool(host) if set_topic is None else set_topic,
            check_uncommitted=check_uncommitted,
            dry_run=dry_run,
        )
        prompt = CliPrompt(console)
        review = Review(git_manager, options, prompt=prompt)

        console.print(f"\n📮 **Mailing {branch}**")
        chain = review.prepare()
        console.print(f"Dependency chain: {' → '.join(chain + [branch])}")

        if not review.confirm_flag_changes(prompt):
            console.print("Review labels left unchanged; nothing was mailed.", style="yellow")
            return

        result = review.run()
        _display_review_result(result)

    except CLError as e:
        _report_cl_error("Mail Error", e)
    except (click.Abort, KeyboardInterrupt):
        _report_cancelled()
    except Exception as e:
        _report_unexpected(ctx, e)


@cli.command()
def version() -> None:
    """Print the current gerrit-cl version."""
    console.print(f"gerrit-cl {PACKAGE_VERSION}")


def _display_review_result(result: ReviewResult) -> None:
    """Display the outcome of a review submission."""
    lines = [
        f"Branch: [green]{result.branch}[/green]",
        f"Reference: [cyan]{result.reference}[/cyan]",
        f"Change-Id: [yellow]{result.change_id or 'pending'}[/yellow]",
    ]
    if result.topic_set:
        lines.append("Topic: set")
    if result.remote_lines:
        lines.append("")
        lines.extend(escape(line) for line in result.remote_lines)
    title = "Dry Run Complete - nothing pushed" if result.dry_run else "Review Mailed"
    console.print(Panel("\n".join(lines), title=title, border_style="green"))


def main() -> None:
    """Main entry point for the CLI."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n\n🚫 **Operation cancelled by user**", style="bold yellow")
        logger.debug("Top-level cancellation (KeyboardInterrupt)", exc_info=True)
        sys.exit(130)
    except Exception as e:
        console.print(f"\n💥 **Unexpected error:** {e}", style="bold red")
        logger.debug("Unexpected error in main()", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
