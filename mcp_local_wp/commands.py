"""Typed tool commands decoded once at the transport boundary."""

from __future__ import annotations

from typing import Any, ClassVar, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import CommandError

ParamValue = Union[str, int, float, bool, None]


class Command(BaseModel):
    """Base class for tool payloads."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    TOOL: ClassVar[str]


class QueryCommand(Command):
    """Run a single SQL statement."""

    TOOL: ClassVar[str] = "mysql_query"

    sql: str = Field(min_length=1)
    params: list[ParamValue] | None = None


class ListTablesCommand(Command):
    TOOL: ClassVar[str] = "mysql_list_tables"


class DescribeTableCommand(Command):
    TOOL: ClassVar[str] = "mysql_describe_table"

    table: str = Field(min_length=1)


class SiteInfoCommand(Command):
    TOOL: ClassVar[str] = "local_site_info"


class ListSitesCommand(Command):
    TOOL: ClassVar[str] = "local_list_sites"


COMMANDS: dict[str, type[Command]] = {
    command.TOOL: command
    for command in (
        QueryCommand,
        ListTablesCommand,
        DescribeTableCommand,
        SiteInfoCommand,
        ListSitesCommand,
    )
}


def decode_command(name: str, arguments: Mapping[str, Any] | None) -> Command:
    """Validate raw tool arguments into the matching command model."""

    command_type = COMMANDS.get(name)
    if command_type is None:
        raise CommandError(f"Unknown tool: {name}")
    payload = {key: value for key, value in (arguments or {}).items() if value is not None}
    try:
        return command_type.model_validate(payload)
    except ValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or name}: {error['msg']}"
            for error in exc.errors()
        )
        raise CommandError(f"Invalid arguments for {name}: {details}") from exc


__all__ = [
    "COMMANDS",
    "Command",
    "DescribeTableCommand",
    "ListSitesCommand",
    "ListTablesCommand",
    "ParamValue",
    "QueryCommand",
    "SiteInfoCommand",
    "decode_command",
]
