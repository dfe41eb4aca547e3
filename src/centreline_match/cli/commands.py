"""CLI commands for centreline-match."""

import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional

import click
import pandas as pd
from pydantic import ValidationError

from centreline_match import CentrelineMatcher, MatcherSettings
from centreline_match.data.manager import CorpusNotLoadedError
from centreline_match.data.models import DisruptionRecord


@click.group()
@click.version_option(package_name="centreline-match")
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding the corpus database (default: ~/.centreline-match)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, data_dir: Optional[Path], verbose: bool):
    """Centreline-match: Match road disruptions to Toronto street segments."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )
    ctx.obj = MatcherSettings.from_env(data_dir=data_dir)


def _open_matcher(settings: MatcherSettings) -> CentrelineMatcher:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    return CentrelineMatcher(settings=settings)


@cli.command()
@click.option("--force", is_flag=True, help="Refetch even if the corpus is fresh")
@click.pass_obj
def refresh(settings: MatcherSettings, force: bool):
    """Download the street centreline corpus if it is stale."""
    asyncio.run(_refresh_async(settings, force))


async def _refresh_async(settings: MatcherSettings, force: bool):
    """Async implementation of refresh command."""
    matcher = _open_matcher(settings)

    try:
        result = await matcher.refresh_corpus(force=force, progress=True)
        click.echo(json.dumps(result.to_dict(), indent=2))
        if not result.success:
            raise click.ClickException(result.error or "Refresh failed")
    finally:
        await matcher.close()


@cli.command()
@click.argument("title")
@click.option("--description", "-d", default="", help="Disruption description")
@click.option("--id", "disruption_id", default="cli", help="Disruption identifier")
@click.option("--refresh/--no-refresh", default=False, help="Refresh the corpus first if stale")
@click.pass_obj
def match(settings: MatcherSettings, title: str, description: str, disruption_id: str, refresh: bool):
    """Match a single disruption and store its segment mappings."""
    asyncio.run(_match_async(settings, title, description, disruption_id, refresh))


async def _match_async(
    settings: MatcherSettings,
    title: str,
    description: str,
    disruption_id: str,
    refresh: bool,
):
    """Async implementation of match command."""
    matcher = _open_matcher(settings)

    try:
        await _ensure_corpus(matcher, refresh)
        record = matcher.register(
            DisruptionRecord(external_id=disruption_id, title=title, description=description)
        )
        results = await matcher.match_one(record.external_id, record.title, record.description)
        matcher.persist_matches(record, results)
        if results:
            click.echo(json.dumps([result.to_dict() for result in results], indent=2))
        else:
            click.echo("No street match found.")
    finally:
        await matcher.close()


@cli.command()
@click.argument("input_file", type=click.Path(exists=True))
@click.option("--id-column", default="external_id", help="Column with disruption identifiers")
@click.option("--title-column", default="title", help="Column with disruption titles")
@click.option("--description-column", default="description", help="Column with descriptions")
@click.option("--refresh/--no-refresh", default=False, help="Refresh the corpus first if stale")
@click.pass_obj
def batch(
    settings: MatcherSettings,
    input_file: str,
    id_column: str,
    title_column: str,
    description_column: str,
    refresh: bool,
):
    """Match a batch of disruptions from a CSV file."""
    asyncio.run(
        _batch_async(settings, input_file, id_column, title_column, description_column, refresh)
    )


async def _batch_async(
    settings: MatcherSettings,
    input_file: str,
    id_column: str,
    title_column: str,
    description_column: str,
    refresh: bool,
):
    """Async implementation of batch command."""
    input_path = Path(input_file)

    if input_path.suffix != ".csv":
        raise click.ClickException(
            f"Unsupported file format: {input_path.suffix}. Only CSV is supported."
        )
    df = pd.read_csv(input_path, dtype=str, keep_default_na=False)

    for column in (id_column, title_column):
        if column not in df.columns:
            raise click.ClickException(f"Column '{column}' not found in input file")

    records: List[DisruptionRecord] = []
    for line, row in enumerate(df.to_dict(orient="records"), start=2):
        try:
            records.append(
                DisruptionRecord(
                    external_id=row[id_column],
                    title=row[title_column],
                    description=row.get(description_column, ""),
                )
            )
        except ValidationError as e:
            raise click.ClickException(f"Invalid disruption on line {line}: {e}")

    matcher = _open_matcher(settings)

    try:
        await _ensure_corpus(matcher, refresh)
        for record in records:
            matcher.register(record)

        summary = await matcher.match_batch(records, progress=True)

        click.echo(f"Processed {summary.total} disruptions from {input_file}")
        click.echo(
            f"Matched: {summary.matched}  Unmatched: {summary.unmatched}  Failed: {summary.failed}"
        )
    finally:
        await matcher.close()


async def _ensure_corpus(matcher: CentrelineMatcher, refresh: bool):
    if refresh:
        result = await matcher.refresh_corpus(progress=True)
        if not result.success:
            click.echo(f"Refresh failed: {result.error}", err=True)
    try:
        matcher.corpus.require_loaded()
    except CorpusNotLoadedError as e:
        raise click.ClickException(f"{e}: centreline-match refresh")


@cli.command()
@click.argument("disruption_id")
@click.pass_obj
def mappings(settings: MatcherSettings, disruption_id: str):
    """Show stored segment mappings for a disruption."""
    asyncio.run(_mappings_async(settings, disruption_id))


async def _mappings_async(settings: MatcherSettings, disruption_id: str):
    """Async implementation of mappings command."""
    matcher = _open_matcher(settings)

    try:
        rows = matcher.get_mappings_for(disruption_id)
        if rows:
            click.echo(json.dumps([row.to_dict() for row in rows], indent=2, default=str))
        else:
            click.echo(f"No mappings stored for {disruption_id}.")
    finally:
        await matcher.close()


@cli.command()
@click.pass_obj
def info(settings: MatcherSettings):
    """Show information about the stored corpus."""
    asyncio.run(_info_async(settings))


async def _info_async(settings: MatcherSettings):
    """Async implementation of info command."""
    matcher = _open_matcher(settings)

    try:
        status = matcher.corpus.status()
        click.echo(f"\nDatabase: {settings.database_path}")
        click.echo(f"Repository: {status['repository']}")
        click.echo(f"Segments: {status['segments']}")
        click.echo(f"Distinct street names: {status['street_names']}")

        if status["last_refresh"]:
            state = "stale" if status["stale"] else "fresh"
            click.echo(f"Last refresh: {status['last_refresh']} ({state})")
        else:
            click.echo("\nNo corpus downloaded yet.")
            click.echo("Run: centreline-match refresh")
    finally:
        await matcher.close()


if __name__ == "__main__":
    cli()
