#!/usr/bin/env python3
"""poolsnap command line entry point."""

import sys
import traceback
from datetime import datetime, timezone
from pathlib import Path

import click

from ..config.settings import Settings
from ..observability.loguru_config import configure_loguru, get_logger
from ..pipelines.rollup_pipeline import MODES, create_rollup_pipeline
from ..sync.publisher import PublishError
from .cli_common import ExitCode, exit_code_for

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}
EPILOG = """
Examples:
  poolsnap                     # Daily snapshot (default)
  poolsnap weekly              # Aggregate day-1..day-7 into the current ISO week
  poolsnap monthly             # Aggregate last month's weekly files
  poolsnap yearly --local      # Aggregate last year's monthly files, no push
""".strip()

logger = get_logger("poolsnap")


def _banner(mode: str) -> None:
    now = datetime.now(timezone.utc).isoformat()
    click.echo("")
    click.echo("╔════════════════════════════════════════╗")
    click.echo("║  SkeletonSwap Pool Snapshot            ║")
    click.echo(f"║  Mode: {mode:<31}║")
    click.echo(f"║  Time: {now[:31]:<31}║")
    click.echo("╚════════════════════════════════════════╝")


@click.command(
    context_settings=CONTEXT_SETTINGS,
    help="Snapshot liquidity pools and roll them up by week, month and year.",
    epilog=EPILOG,
)
@click.argument("mode", type=click.Choice(MODES), default="daily", required=False)
@click.option("--env-file", type=click.Path(dir_okay=False, path_type=Path), help="Path to .env file")
@click.option("--data-dir", type=click.Path(file_okay=False, path_type=Path), help="Storage root (overrides POOLSNAP_DATA_DIR)")
@click.option("--local", is_flag=True, help="Do not commit or push results")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Log level (overrides POOLSNAP_LOG_LEVEL)",
)
@click.option("--verbose", "-v", is_flag=True, help="Print tracebacks on failure")
def cli(
    mode: str,
    env_file: Path | None,
    data_dir: Path | None,
    local: bool,
    log_level: str | None,
    verbose: bool,
) -> int:
    """Run one snapshot or rollup."""
    _banner(mode)

    try:
        settings = Settings.from_env(env_file)
        if data_dir is not None:
            settings.data_dir = data_dir
        if log_level:
            settings.log_level = log_level.upper()

        configure_loguru(log_dir=settings.log_dir, level=settings.log_level)

        pipeline = create_rollup_pipeline(settings, publish=not local)

        try:
            pipeline.publisher.prepare()
        except PublishError as exc:
            logger.warning(f"Git setup failed, results stay local until the next push: {exc}")

        pipeline.store.ensure_dirs()
        result = pipeline.run(mode)

    except Exception as exc:
        code = exit_code_for(exc)
        click.echo(f"\n✗ Error: {exc}", err=True)
        if verbose:
            traceback.print_exc()
        return int(code)

    if result.summary_lines:
        click.echo("")
        for line in result.summary_lines:
            click.echo(line)

    click.echo(f"\nSaved: {result.path}")
    if result.errors:
        click.echo(f"⚠️  Publish failed: {'; '.join(result.errors)}")

    click.echo(f"\n✓ Complete! Processed {result.pools_count} pools.")
    return int(ExitCode.SUCCESS)


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    if args is None:
        args = sys.argv[1:]

    try:
        return cli.main(args=list(args), standalone_mode=False) or 0
    except click.ClickException as exc:
        exc.show()
        return exc.exit_code
    except click.Abort:
        click.echo("Aborted!", err=True)
        return 1
    except SystemExit as exc:
        return int(exc.code) if exc.code is not None else 0


if __name__ == "__main__":
    sys.exit(main())
