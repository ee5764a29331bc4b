"""
CLI interface for osqtool.

Operates on osquery query files (*.sql with `--` directives) and pack files.

Commands:
    init     write a default policy.yaml
    pack     combine queries into a pack
    unpack   split a pack into .sql files
    verify   run every query against osqueryi and enforce budgets
    run      run queries and print their rows
"""

import functools
from pathlib import Path

import click

from osqtool import __version__
from osqtool.errors import OsqtoolError


def policy_options(func):
    """Options shared by every command that resolves or verifies queries."""
    options = [
        click.option("--default-interval", help="Interval for queries which do not specify one (e.g. 1h)"),
        click.option("--min-interval", help="Queries can't be scheduled more often than this"),
        click.option("--max-interval", help="Queries can't be scheduled less often than this"),
        click.option("--tag-intervals", help="Comma-separated tag=modifier rules (e.g. often=x/4,rapid=15s)"),
        click.option("--exclude", help="Comma-separated list of queries to exclude"),
        click.option("--exclude-tags", help="Comma-separated list of tags to exclude"),
        click.option("--platforms", help="Comma-separated list of platforms to include"),
        click.option("--workers", type=int, help="Number of queries to verify in parallel"),
        click.option("--max-duration", help="Maximum duration of a single run"),
        click.option("--max-query-daily-duration", help="Maximum runtime per day for one query"),
        click.option("--max-total-daily-duration", help="Maximum runtime per day for all queries"),
        click.option("--max-results", type=int, help="Maximum number of rows a query may return"),
    ]
    for option in reversed(options):
        func = option(func)

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        overrides = {
            "default_interval": kwargs.pop("default_interval"),
            "min_interval": kwargs.pop("min_interval"),
            "max_interval": kwargs.pop("max_interval"),
            "tag_intervals": kwargs.pop("tag_intervals"),
            "exclude": kwargs.pop("exclude"),
            "exclude_tags": kwargs.pop("exclude_tags"),
            "platforms": kwargs.pop("platforms"),
            "concurrency_limit": kwargs.pop("workers"),
            "max_duration": kwargs.pop("max_duration"),
            "max_query_daily_duration": kwargs.pop("max_query_daily_duration"),
            "max_total_daily_duration": kwargs.pop("max_total_daily_duration"),
            "max_results": kwargs.pop("max_results"),
        }
        return func(*args, policy_overrides=overrides, **kwargs)

    return wrapper


def _policy(ctx, overrides):
    from osqtool.config import load_policy

    try:
        return load_policy(ctx.obj.get("config_path"), **overrides)
    except OsqtoolError as e:
        raise click.ClickException(str(e))


def _load_and_resolve(paths, policy):
    from osqtool.loader import load_paths
    from osqtool.resolver import resolve

    try:
        store = load_paths(paths)
    except OsqtoolError as e:
        raise click.ClickException(str(e))
    return resolve(store.as_dict(), policy)


def _verify(records, policy, osqueryi: str) -> bool:
    """Verify records, print the report, and return True if it passed."""
    from osqtool.backend import OsqueryiBackend
    from osqtool.verifier import verify

    report = verify(records, policy, OsqueryiBackend(binary=osqueryi))

    click.echo(report.summary())
    click.echo(
        f"total runtime per day: {report.total_daily_duration:.3f}s "
        f"over {report.total_daily_runs} runs"
    )
    error = report.error
    if error is None:
        return True

    click.echo(f"✗ verify failed: {len(error)} error(s)", err=True)
    for e in error:
        click.echo(f"  * {e}", err=True)
    return False


@click.group()
@click.version_option(version=__version__, prog_name="osqtool")
@click.option("--config", "config_path", type=click.Path(path_type=Path), help="Policy file (default: $OSQTOOL_HOME/policy.yaml)")
@click.option("--log-level", default="WARNING", show_default=True, help="Logging level")
@click.option("--log-format", type=click.Choice(["pretty", "structured", "plain"]), default="pretty", show_default=True)
@click.pass_context
def main(ctx, config_path, log_level: str, log_format: str):
    """
    osqtool - operate on osquery query and pack files.
    """
    from osqtool.utils import setup_logging

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    setup_logging(log_level=log_level, log_format=log_format)


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Write a default policy.yaml."""
    import yaml

    from osqtool.config import POLICY_FILE, get_osqtool_home, policy_to_dict
    from osqtool.schemas import Policy

    home = get_osqtool_home()
    home.mkdir(parents=True, exist_ok=True)

    cfg_path = home / POLICY_FILE
    if cfg_path.exists() and not force:
        click.echo(f"Config already exists at {cfg_path}. Use --force to overwrite.", err=True)
        raise SystemExit(1)

    cfg_path.write_text(yaml.safe_dump(policy_to_dict(Policy()), sort_keys=False))
    click.echo(f"Initialized osqtool policy at {cfg_path}")


@main.command("pack")
@click.argument("paths", nargs=-1, required=True)
@click.option("--output", "-o", type=click.Path(path_type=Path), help="Location of output (default: stdout)")
@click.option("--single-quotes", is_flag=True, help="Render escaped double quotes as single quotes")
@click.option("--verify", "verify_first", is_flag=True, help="Verify queries before packing")
@click.option("--osqueryi", default="osqueryi", show_default=True, help="osqueryi binary used by --verify")
@policy_options
@click.pass_context
def pack(ctx, paths, output, single_quotes: bool, verify_first: bool, osqueryi: str, policy_overrides):
    """
    Combine queries into an osquery pack.

    PATHS are .sql files, directories of .sql files, or packs.

    Examples:

        osqtool pack detection/ --output detection.conf

        osqtool pack --exclude-tags=slow --tag-intervals=often=x/4 incident-response/
    """
    from osqtool.pack import render_pack

    policy = _policy(ctx, policy_overrides)
    records = _load_and_resolve(paths, policy)

    if verify_first and not _verify(records, policy, osqueryi):
        raise SystemExit(1)

    text = render_pack(records, single_quotes=single_quotes)
    if output is None:
        click.echo(text)
        return

    output.write_text(text + "\n")
    click.echo(f"Packed {len(records)} queries into {output}", err=True)


@main.command("unpack")
@click.argument("pack_path")
@click.option("--output", "-o", type=click.Path(path_type=Path), default=Path("."), show_default=True, help="Directory to write .sql files to")
@policy_options
@click.pass_context
def unpack(ctx, pack_path: str, output: Path, policy_overrides):
    """
    Split a pack into one .sql file per query.

    PACK_PATH is a pack file, or - to read from stdin.
    """
    from osqtool.loader import save_to_directory

    policy = _policy(ctx, policy_overrides)
    records = _load_and_resolve([pack_path], policy)

    try:
        save_to_directory(records, output)
    except OsqtoolError as e:
        raise click.ClickException(str(e))

    click.echo(f"{len(records)} queries saved to {output}")


@main.command("verify")
@click.argument("paths", nargs=-1, required=True)
@click.option("--osqueryi", default="osqueryi", show_default=True, help="osqueryi binary")
@policy_options
@click.pass_context
def verify_cmd(ctx, paths, osqueryi: str, policy_overrides):
    """
    Run every query and check it against the verification budgets.

    Exits non-zero if any query fails, the total daily runtime is exceeded,
    or no query could be verified.
    """
    policy = _policy(ctx, policy_overrides)
    records = _load_and_resolve(paths, policy)

    if not _verify(records, policy, osqueryi):
        raise SystemExit(1)


@main.command("run")
@click.argument("paths", nargs=-1, required=True)
@click.option("--osqueryi", default="osqueryi", show_default=True, help="osqueryi binary")
@policy_options
@click.pass_context
def run_cmd(ctx, paths, osqueryi: str, policy_overrides):
    """Run queries and print the rows they return."""
    from osqtool.backend import OsqueryiBackend, format_row
    from osqtool.verifier import run_query

    policy = _policy(ctx, policy_overrides)
    records = _load_and_resolve(paths, policy)
    backend = OsqueryiBackend(binary=osqueryi)

    failed = 0
    for name in sorted(records):
        try:
            result = run_query(records[name], backend)
        except OsqtoolError as e:
            click.echo(f"✗ {e}", err=True)
            failed += 1
            continue

        if result.incompatible_platform:
            click.echo(f"{name}: skipped (incompatible platform {result.incompatible_platform!r})")
            continue

        click.echo(f"{name}: {len(result.rows)} rows in {result.elapsed:.3f}s")
        for row in result.rows:
            click.echo(f"  {format_row(row)}")

    if failed:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
