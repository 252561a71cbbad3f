"""CLI entry point for fontpress - subset fonts to the characters you need."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import click

from fontpress.charsets import DEFAULT_REGISTRY
from fontpress.config import DEFAULT_PORT, OUTPUT_PREFIX, Settings
from fontpress.engine import SubsetEngine
from fontpress.errors import FontPressError
from fontpress.fetcher import FontFetcher
from fontpress.repertoire import RepertoireResolver, text_stats
from fontpress.tempfiles import TempScope


def _setup_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")


def _split_ids(values: tuple[str, ...]) -> list[str]:
    """Accept both repeated -c options and comma-separated lists."""
    ids: list[str] = []
    for value in values:
        ids.extend(part.strip() for part in value.split(",") if part.strip())
    return ids


# -- CLI group --------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0", prog_name="fontpress")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
@click.pass_context
def cli(ctx: click.Context, verbose: bool):
    """Subset TTF/OTF fonts down to the characters you actually use."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _setup_logging(verbose)


# -- subset ----------------------------------------------------------------------------


async def _run_subset(
    source: str, text: str, charset_ids: list[str], settings: Settings, scope: TempScope
):
    repertoire = RepertoireResolver(DEFAULT_REGISTRY).resolve(text, charset_ids)
    if source.startswith(("http://", "https://")):
        fetcher = FontFetcher(timeout=settings.download_timeout, temp_dir=settings.temp_dir)
        font_path = await fetcher.fetch(source, owner=scope)
    else:
        font_path = Path(source)
    engine = SubsetEngine(
        timeout=settings.processing_timeout,
        normalize_otf=settings.normalize_otf,
        temp_dir=settings.temp_dir,
    )
    result = await engine.subset(font_path, repertoire, owner=scope)
    return repertoire, font_path, result


@cli.command()
@click.argument("source")
@click.option("-t", "--text", default="", help="Characters to keep")
@click.option(
    "-f",
    "--text-file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Read characters to keep from a UTF-8 file",
)
@click.option("-c", "--charset", "charsets", multiple=True, help="Preset id(s) to merge in")
@click.option("-o", "--output", type=click.Path(), default=None, help="Output font path")
@click.option("--keep-otf", is_flag=True, help="Do not convert CFF outlines to TrueType")
def subset(source, text, text_file, charsets, output, keep_otf):
    """Subset a local font file or font URL to TEXT plus CHARSET presets."""
    if text_file:
        text += Path(text_file).read_text(encoding="utf-8")
    charset_ids = _split_ids(charsets)

    settings = Settings.from_env()
    if keep_otf:
        settings.normalize_otf = False

    if not source.startswith(("http://", "https://")) and not Path(source).is_file():
        click.secho(f"Error: font not found: {source}", fg="red", err=True)
        sys.exit(1)

    with TempScope() as scope:
        try:
            repertoire, font_path, result = asyncio.run(
                _run_subset(source, text, charset_ids, settings, scope)
            )
        except FontPressError as e:
            click.secho(f"Error: {e}", fg="red", err=True)
            sys.exit(1)

        default_name = f"{OUTPUT_PREFIX}{font_path.stem}{result.extension}"
        out = Path(output) if output else Path(default_name)
        out.write_bytes(result.data)

    click.secho(f"Wrote {out}", fg="green")
    click.echo(f"  Characters: {len(repertoire)}")
    if source.startswith(("http://", "https://")):
        click.echo(f"  Size: {result.size:,} bytes")
    else:
        original = Path(source).stat().st_size
        ratio = result.size / original if original else 0
        click.echo(f"  Size: {original:,} -> {result.size:,} bytes ({ratio:.1%})")
    if result.normalized:
        click.echo("  Converted CFF outlines to TrueType")
    if repertoire.missing:
        click.secho(f"  Unknown charsets skipped: {', '.join(repertoire.missing)}", fg="yellow")


# -- charsets --------------------------------------------------------------------------


@cli.command()
@click.argument("name", required=False)
def charsets(name):
    """List preset ids, or print the characters of preset NAME."""
    if name is None:
        available = DEFAULT_REGISTRY.list_available()
        for group, ids in available.items():
            click.secho(f"{group}:", bold=True)
            for charset_id in ids:
                stats = text_stats(DEFAULT_REGISTRY.resolve(charset_id) or "")
                click.echo(f"  {charset_id:<20} {stats['unique']:>5} chars")
        return

    chars = DEFAULT_REGISTRY.resolve(name)
    if chars is None:
        click.secho(f"Unknown charset: {name}", fg="red", err=True)
        sys.exit(1)
    click.echo(chars)


# -- serve -----------------------------------------------------------------------------


@cli.command()
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", type=int, default=DEFAULT_PORT, help="Port to listen on")
@click.pass_context
def serve(ctx, host, port):
    """Run the development HTTP server."""
    from fontpress.web import bind_server

    if not ctx.obj.get("verbose"):
        logging.basicConfig(level=logging.INFO, format="[%(name)s] %(message)s")

    server = bind_server(Settings.from_env(), host, port)
    context = server.context
    bound_host, bound_port = server.server_address[:2]
    click.echo(f"fontpress server on http://{bound_host}:{bound_port}")
    click.echo(f"Environment: {context.settings.environment}")
    if not context.settings.blob_token:
        click.echo(f"Files:       {context.settings.files_url}")
    click.echo("Press Ctrl+C to stop\n")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        click.echo("\nShutting down.")
    finally:
        server.server_close()
