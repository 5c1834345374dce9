import typer

from batchdispatch.cli.enums import HttpMethod


def method_callback(ctx: typer.Context, value: str):
    if ctx.resilient_parsing:
        return
    method = value.upper()
    if method not in HttpMethod.__members__.values():
        raise typer.BadParameter(
            message=f"'{value}' is not a supported method, supported methods are: {', '.join(HttpMethod.__members__.values())}",
            param_hint="--method, -X",
        )
    return method


def headers_callback(ctx: typer.Context, value: list[str] | None):
    if ctx.resilient_parsing:
        return
    for raw_header in value or []:
        name, separator, _ = raw_header.partition(":")
        if not separator or not name.strip():
            raise typer.BadParameter(
                message=f"'{raw_header}' is not a valid header, expected 'Name: value'",
                param_hint="--header, -H",
            )
    return value
