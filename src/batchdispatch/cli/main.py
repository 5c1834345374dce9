import json
import logging
from typing import Annotated

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from batchdispatch.api import request, resolve
from batchdispatch.cli.callbacks import headers_callback, method_callback
from batchdispatch.cli.completions import complete_method
from batchdispatch.config import DispatcherSettings
from batchdispatch.logging import setup_logging
from batchdispatch.models import ResponseRecord

app = typer.Typer(no_args_is_help=True)

BODY_PREVIEW_LENGTH = 60


def parse_headers(raw_headers: list[str] | None) -> dict[str, str]:
    headers: dict[str, str] = {}
    for raw_header in raw_headers or []:
        name, _, value = raw_header.partition(":")
        headers[name.strip()] = value.strip()
    return headers


def make_request(method: str, url: str, headers: dict[str, str], body: str | None):
    return lambda: request(method, url, headers=headers, body=body)


def print_records(records: list[ResponseRecord]):
    table = Table("URL", "Status", "Error", "Body", title="Responses")
    for record in records:
        preview = record.body.replace("\n", " ")
        if len(preview) > BODY_PREVIEW_LENGTH:
            preview = preview[:BODY_PREVIEW_LENGTH] + "…"
        status = f"[red]{record.status}[/red]" if record.error else f"[green]{record.status}[/green]"
        table.add_row(record.url, status, record.error.code if record.error else "", preview)
    console = Console()
    console.print(table)


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("-v", "--verbose", help="Log dispatcher events"),
    ] = False,
):
    """Dispatch HTTP requests concurrently in a single round-trip"""
    load_dotenv()
    setup_logging(level=logging.DEBUG if verbose else logging.WARNING)


@app.command(name="fetch")
def fetch(
    urls: Annotated[
        list[str],
        typer.Argument(help="URLs to request"),
    ],
    method: Annotated[
        str,
        typer.Option(
            "-X",
            "--method",
            help="HTTP method used for every request",
            callback=method_callback,
            autocompletion=complete_method,
        ),
    ] = "GET",
    header: Annotated[
        list[str] | None,
        typer.Option(
            "-H",
            "--header",
            help="Header sent with every request, as 'Name: value'",
            callback=headers_callback,
        ),
    ] = None,
    data: Annotated[
        str | None,
        typer.Option("-d", "--data", help="Request body sent with every request"),
    ] = None,
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", help="Per-request timeout in seconds"),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print records as JSON"),
    ] = False,
):
    """Fetch URLs concurrently and print one record per URL"""
    settings = DispatcherSettings.from_env(timeout=timeout)
    headers = parse_headers(header)
    records = resolve(
        [make_request(method, url, headers, data) for url in urls],
        settings=settings,
    )
    if as_json:
        typer.echo(json.dumps([record.model_dump(mode="json") for record in records], indent=2))
    else:
        print_records(records)
    if any(record.error is not None for record in records):
        raise typer.Exit(code=1)
