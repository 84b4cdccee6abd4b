"""Command line for sharing projects through a Vibelink server."""

import json
from pathlib import Path

import click

from vibelink.client import (
    DEFAULT_BASE_URL,
    METADATA_FILE,
    PROJECTS_DIR,
    VibelinkClient,
    VibelinkClientError,
)


@click.group()
@click.option(
    "--server",
    envvar="VIBELINK_SERVER",
    default=DEFAULT_BASE_URL,
    show_default=True,
    help="Vibelink server base URL",
)
@click.pass_context
def main(ctx: click.Context, server: str) -> None:
    """Share small projects by link."""
    ctx.obj = {"server": server}


@main.command("push")
@click.argument(
    "path",
    default=".",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
@click.option("--name", help="Project name (when vibelink.json does not exist)")
@click.option("--description", default="", help="Short description")
@click.option("--author", help="Author handle")
@click.pass_context
def push(
    ctx: click.Context,
    path: Path,
    name: str | None,
    description: str,
    author: str | None,
) -> None:
    """Upload the project at PATH.

    \b
    Examples:
        vibelink push                       # current directory
        vibelink push ./my-app --name "My App" --description "Demo"
    """
    metadata_path = path / METADATA_FILE
    metadata = None
    if not metadata_path.exists():
        metadata = {
            "name": name or path.resolve().name,
            "description": description,
        }
        if author:
            metadata["author"] = author

    with VibelinkClient(ctx.obj["server"]) as client:
        try:
            result = client.push(path, metadata)
        except VibelinkClientError as e:
            raise click.ClickException(e.message) from e

    click.echo("Updated on Vibelink!" if result["isUpdate"] else "Uploaded to Vibelink!")
    click.echo(f"\n  {result['url']}\n")
    if result.get("authorToken"):
        click.echo(
            f"Your author token has been saved to "
            f"{client.tokens.directory / result['projectId']}"
        )
        click.echo("You'll need this token to update your project later.")


@main.command("pull")
@click.argument("project_id")
@click.option(
    "--dest",
    type=click.Path(file_okay=False, path_type=Path),
    default=PROJECTS_DIR,
    show_default=True,
    help="Directory projects are unpacked into",
)
@click.pass_context
def pull(ctx: click.Context, project_id: str, dest: Path) -> None:
    """Download PROJECT_ID and unpack it."""
    with VibelinkClient(ctx.obj["server"]) as client:
        try:
            metadata = client.metadata(project_id)
            root = client.pull(project_id, dest)
        except VibelinkClientError as e:
            raise click.ClickException(e.message) from e

    click.echo(f"Downloaded {metadata.get('name', project_id)}")
    click.echo(f"  {root}")


@main.command("info")
@click.argument("project_id")
@click.pass_context
def info(ctx: click.Context, project_id: str) -> None:
    """Print a project's public metadata."""
    with VibelinkClient(ctx.obj["server"]) as client:
        try:
            metadata = client.metadata(project_id)
        except VibelinkClientError as e:
            raise click.ClickException(e.message) from e

    click.echo(json.dumps(metadata, indent=2))
