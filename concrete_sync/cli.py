#!/usr/bin/env python3
"""
CLI for concrete-sync

This module provides the command-line interface: push a snapshot of the
site, pull one back, repair the environment and inspect the configuration.
"""

import shutil
import sys
from pathlib import Path

import click

from concrete_sync import __version__
from concrete_sync.commands import report_error
from concrete_sync.commands.backup import backup_database
from concrete_sync.commands.fix import fix_environment
from concrete_sync.commands.pull import pull_snapshot
from concrete_sync.commands.push import push_snapshot
from concrete_sync.commands.tags import list_snapshot_tags
from concrete_sync.config_yaml import load_config
from concrete_sync.exceptions import OperationCancelled, PrerequisiteMissing
from concrete_sync.settings import Settings, load_settings
from concrete_sync.sync.tags import LATEST

CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])


def _load(ctx):
    return load_config(ctx.obj["config_file"], verbose=ctx.obj["verbose"])


def _settings_for(ctx, direction: str) -> Settings:
    """
    Loads and validates the settings, exiting with status 1 when they are unusable
    """
    try:
        config = _load(ctx)
    except FileNotFoundError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    try:
        settings = load_settings(config, direction)
        for warning in settings.check_tools(direction):
            click.echo(f"⚠️ {warning}")
    except PrerequisiteMissing as e:
        report_error(e)
        sys.exit(1)
    return settings


def _finish(action, *args, **kwargs):
    """
    Runs a command function and maps its outcome to the exit status
    """
    try:
        success = action(*args, **kwargs)
    except OperationCancelled:
        click.echo("❌ Operation cancelled.")
        sys.exit(0)
    if not success:
        sys.exit(1)


# Main command group
@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, prog_name="concrete-sync")
@click.option("--config", "config_file", type=click.Path(dir_okay=False, path_type=Path),
              help="Configuration file (YAML, or KEY=VALUE deployment-config format)")
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt")
@click.option("--verbose", "-v", is_flag=True, help="Show detailed information during execution")
@click.pass_context
def cli(ctx, config_file, yes, verbose):
    """
    Snapshot synchronization for Concrete CMS sites.

    Moves the database, uploaded files and configuration of a site between
    environments through a Git repository of tagged snapshots.

    Configuration is read from concrete-sync.yaml and .deployment-config in
    the current directory; environment variables override both.
    """
    ctx.ensure_object(dict)
    ctx.obj.update(config_file=config_file, yes=yes, verbose=verbose)


@cli.command("push")
@click.pass_context
def push_command(ctx):
    """
    Publishes the local site as a new snapshot.

    Stages configuration, uploaded files and a database dump, commits them
    as one snapshot, pushes it and creates a snapshot tag.

    Example:
        concrete-sync push
    """
    settings = _settings_for(ctx, "push")
    _finish(push_snapshot, settings, assume_yes=ctx.obj["yes"], verbose=ctx.obj["verbose"])


@cli.command("pull")
@click.option("--tag", "tag", help="Snapshot tag to apply (skips the interactive selection)")
@click.option("--latest", is_flag=True, help="Apply the most recent snapshot from the branch")
@click.pass_context
def pull_command(ctx, tag, latest):
    """
    Applies a snapshot to the local site.

    Without --tag or --latest the available snapshots are listed and one
    can be chosen interactively. The local database is replaced.

    Examples:
        concrete-sync pull
        concrete-sync pull --latest
        concrete-sync pull --tag snapshot-2024-02-01_13-45-00
    """
    if tag and latest:
        raise click.UsageError("--tag and --latest cannot be used together")

    settings = _settings_for(ctx, "pull")
    ref = LATEST if latest else tag
    _finish(pull_snapshot, settings, ref=ref, assume_yes=ctx.obj["yes"], verbose=ctx.obj["verbose"])


@cli.command("fix")
@click.pass_context
def fix_command(ctx):
    """
    Repairs the local environment.

    Removes a stale working clone, normalises file permissions, reinstalls
    dependencies and clears the caches.
    """
    settings = _settings_for(ctx, "fix")
    _finish(fix_environment, settings, verbose=ctx.obj["verbose"])


@cli.command("tags")
@click.option("--limit", type=click.IntRange(min=1), help="Show at most this many tags")
@click.pass_context
def tags_command(ctx, limit):
    """
    Lists the snapshot tags, newest first.
    """
    settings = _settings_for(ctx, "tags")
    _finish(list_snapshot_tags, settings, limit=limit, verbose=ctx.obj["verbose"])


@cli.command("backup")
@click.option("--output-dir", type=click.Path(file_okay=False), help="Directory where to save the backup")
@click.pass_context
def backup_command(ctx, output_dir):
    """
    Creates a compressed backup of the local database.

    By default the backup is written to <site>/backups/db_<timestamp>.sql.gz.
    """
    settings = _settings_for(ctx, "backup")
    _finish(backup_database, settings, output_dir=output_dir, verbose=ctx.obj["verbose"])


@cli.command("check")
@click.pass_context
def check_command(ctx):
    """
    Verifies system requirements and configuration.
    """
    click.echo("🔍 Verifying system requirements...")

    for tool, purpose in (("git", "snapshot transport"),
                          ("mysqldump", "database export"),
                          ("mysql", "database import"),
                          ("rsync", "directory mirroring, optional"),
                          ("composer", "dependency installation, optional")):
        if shutil.which(tool):
            click.echo(f"✅ {tool}: Installed")
        else:
            click.echo(f"⚠️ {tool}: Not found ({purpose})")

    click.echo("\n🔍 Verifying configuration...")
    try:
        config = _load(ctx)
    except FileNotFoundError as e:
        click.echo(f"❌ {e}")
        sys.exit(1)

    all_good = True
    for direction in ("push", "pull"):
        try:
            settings = load_settings(config, direction)
            settings.check_tools(direction)
            click.echo(f"✅ Ready to {direction}")
        except PrerequisiteMissing as e:
            all_good = False
            click.echo(f"❌ Not ready to {direction}: {e.message}")
            if e.remediation:
                click.echo(f"   👉 {e.remediation}")

    settings = Settings.from_config(config)
    click.echo(f"ℹ️ Mirror tool: {settings.resolved_mirror_tool()}")
    click.echo(f"ℹ️ Configuration exclusions: {len(settings.configuration_exclusions)} patterns")
    click.echo(f"ℹ️ Uploaded files exclusions: {len(settings.uploaded_files_exclusions)} patterns")

    if not all_good:
        sys.exit(1)


@cli.command("config")
@click.option("--show", is_flag=True, help="Show current configuration")
@click.pass_context
def config_command(ctx, show):
    """
    Manages the configuration.
    """
    if not show:
        click.echo("Usage: concrete-sync config --show")
        return

    try:
        config = _load(ctx)
    except FileNotFoundError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)
    config.display()


def main():
    """
    Main entry point
    """
    try:
        cli()
    except Exception as e:
        click.echo(f"❌ Error: {str(e)}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
