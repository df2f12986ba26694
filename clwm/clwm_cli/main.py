"""
clwm command-line tool.

Commands:
- create: write a world descriptor and initialize its store
- new / update / find / get: one subcommand per record kind
  (noun, noun-type, data-type, attribute-type, attribute)
- history: print the stored diffs of a record

Usage:
    clwm create world.clwm sqlite sqlite:world.db
    clwm new noun-type --name Person
    clwm new noun --name Alice --noun-type Person
    clwm get noun 1
    clwm history noun 1

Invariants:
    - Domain errors exit 1, storage and input errors exit 2
    - Omitted values are prompted for on stdin; prompts go to stderr
    - stdout carries only the rendered records

How to change safely:
    - Add new options as optional flags so prompting keeps working
    - Keep line output tab-separated for scripting
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import Any

from ..clwm_lib import __version__
from ..clwm_lib.config import ClwmConfig, setup_logging
from ..clwm_lib.engine import HistoryKind, WorldEngine
from ..clwm_lib.errors import ClwmError
from ..clwm_lib.model import Attribute, AttributeType, Noun, NounType
from ..clwm_lib.schema import (
    dump_definition,
    dump_value,
    load_definition,
    load_value,
)
from ..clwm_lib.storage import StorageBackend, StorageError
from ..clwm_lib.world_file import create_world, open_world
from .prompts import (
    CliInputError,
    arg_input,
    bool_input,
    document_input,
    int_input,
    optional_int_input,
    parse_bool,
)
from .render import render_document, render_history, render_line

logger = logging.getLogger(__name__)

Handler = Callable[[WorldEngine, argparse.Namespace, ClwmConfig], Awaitable[None]]


def _commented(text: str) -> str:
    return "".join(f"# {line}\n" for line in text.splitlines())


def _emit(record: Any) -> None:
    sys.stdout.write(render_document(record))


def _emit_lines(records: list[Any]) -> None:
    for record in records:
        print(render_line(record))


# =============================================================================
# Noun types
# =============================================================================


async def new_noun_type(engine: WorldEngine, args: argparse.Namespace, config: ClwmConfig) -> None:
    type_name = arg_input(args.name, "type name")
    metadata = arg_input(args.metadata, "metadata", default="")
    _emit(await engine.new_noun_type(type_name, metadata))


async def update_noun_type(
    engine: WorldEngine, args: argparse.Namespace, config: ClwmConfig
) -> None:
    noun_type_id = int_input(args.id, "noun type id")
    current = await engine.get_noun_type(noun_type_id)
    updated = NounType(
        id=noun_type_id,
        type_name=arg_input(args.name, "type name", default=current.type_name),
        metadata=arg_input(args.metadata, "metadata", default=current.metadata),
    )
    _emit(await engine.update_noun_type(updated))


async def find_noun_type(engine: WorldEngine, args: argparse.Namespace, config: ClwmConfig) -> None:
    _emit_lines(await engine.find_noun_types(type_name=args.name))


async def get_noun_type(engine: WorldEngine, args: argparse.Namespace, config: ClwmConfig) -> None:
    _emit(await engine.get_noun_type(int_input(args.id, "noun type id")))


# =============================================================================
# Nouns
# =============================================================================


async def new_noun(engine: WorldEngine, args: argparse.Namespace, config: ClwmConfig) -> None:
    name = arg_input(args.name, "name")
    noun_type = arg_input(args.noun_type, "noun type")
    metadata = arg_input(args.metadata, "metadata", default="")
    _emit(await engine.new_noun(name, noun_type, metadata))


async def update_noun(engine: WorldEngine, args: argparse.Namespace, config: ClwmConfig) -> None:
    noun_id = int_input(args.id, "noun id")
    current = await engine.get_noun(noun_id)
    updated = Noun(
        id=noun_id,
        name=arg_input(args.name, "name", default=current.name),
        noun_type=arg_input(args.noun_type, "noun type", default=current.noun_type),
        metadata=arg_input(args.metadata, "metadata", default=current.metadata),
    )
    _emit(await engine.update_noun(updated))


async def find_noun(engine: WorldEngine, args: argparse.Namespace, config: ClwmConfig) -> None:
    _emit_lines(await engine.find_nouns(name=args.name, noun_type=args.noun_type))


async def get_noun(engine: WorldEngine, args: argparse.Namespace, config: ClwmConfig) -> None:
    _emit(await engine.get_noun(int_input(args.id, "noun id"), populate=True))


# =============================================================================
# Data types
# =============================================================================


async def new_data_type(engine: WorldEngine, args: argparse.Namespace, config: ClwmConfig) -> None:
    name = arg_input(args.name, "data type name")
    template = _commented("definition, e.g.\ncustom:\n  first: text\n  tags:\n    array: text")
    definition = load_definition(document_input(args.definition_file, config.editor, template))
    _emit(await engine.new_data_type(name, definition))


async def update_data_type(
    engine: WorldEngine, args: argparse.Namespace, config: ClwmConfig
) -> None:
    name = arg_input(args.name, "data type name")
    current = await engine.get_data_type(name)
    text = document_input(args.definition_file, config.editor, dump_definition(current.definition))
    _emit(await engine.update_data_type(name, load_definition(text)))


async def find_data_type(engine: WorldEngine, args: argparse.Namespace, config: ClwmConfig) -> None:
    _emit_lines(await engine.find_data_types(name=args.name, all_versions=args.all_versions))


async def get_data_type(engine: WorldEngine, args: argparse.Namespace, config: ClwmConfig) -> None:
    name = arg_input(args.name, "data type name")
    _emit(await engine.get_data_type(name, version=args.version))


# =============================================================================
# Attribute types
# =============================================================================


async def new_attribute_type(
    engine: WorldEngine, args: argparse.Namespace, config: ClwmConfig
) -> None:
    attribute_name = arg_input(args.name, "attribute name")
    data_type = arg_input(args.data_type, "data type")
    multiple_allowed = bool_input(args.multiple_allowed, "multiple allowed", default=False)
    metadata = arg_input(args.metadata, "metadata", default="")
    _emit(await engine.new_attribute_type(attribute_name, data_type, multiple_allowed, metadata))


async def update_attribute_type(
    engine: WorldEngine, args: argparse.Namespace, config: ClwmConfig
) -> None:
    attribute_type_id = int_input(args.id, "attribute type id")
    current = await engine.get_attribute_type(attribute_type_id)
    updated = AttributeType(
        id=attribute_type_id,
        attribute_name=arg_input(args.name, "attribute name", default=current.attribute_name),
        data_type=current.data_type,
        multiple_allowed=bool_input(
            args.multiple_allowed, "multiple allowed", default=current.multiple_allowed
        ),
        metadata=arg_input(args.metadata, "metadata", default=current.metadata),
    )
    _emit(await engine.update_attribute_type(updated))


async def find_attribute_type(
    engine: WorldEngine, args: argparse.Namespace, config: ClwmConfig
) -> None:
    _emit_lines(await engine.find_attribute_types(name=args.name, data_type=args.data_type))


async def get_attribute_type(
    engine: WorldEngine, args: argparse.Namespace, config: ClwmConfig
) -> None:
    _emit(await engine.get_attribute_type(int_input(args.id, "attribute type id")))


# =============================================================================
# Attributes
# =============================================================================


async def _data_template(engine: WorldEngine, data_type: str, version: int) -> str:
    definition = (await engine.get_data_type(data_type, version)).definition
    return _commented(f"value for {data_type} v{version}, definition:\n" + dump_definition(definition))


async def new_attribute(engine: WorldEngine, args: argparse.Namespace, config: ClwmConfig) -> None:
    attribute_type_id = int_input(args.attribute_type_id, "attribute type id")
    attribute_type = await engine.get_attribute_type(attribute_type_id)
    parent_noun_id = args.parent_noun_id
    parent_attribute_id = args.parent_attribute_id
    if parent_noun_id is None and parent_attribute_id is None:
        parent_noun_id = optional_int_input(None, "parent noun id")
        if parent_noun_id is None:
            parent_attribute_id = optional_int_input(None, "parent attribute id")
    latest = await engine.get_data_type(attribute_type.data_type)
    version = int_input(args.data_type_version, "data type version", default=latest.version)
    if args.data_file is None:
        template = await _data_template(engine, attribute_type.data_type, version)
    else:
        template = ""
    data = load_value(document_input(args.data_file, config.editor, template))
    metadata = arg_input(args.metadata, "metadata", default="")
    _emit(
        await engine.new_attribute(
            attribute_type_id,
            data,
            version,
            parent_noun_id=parent_noun_id,
            parent_attribute_id=parent_attribute_id,
            metadata=metadata,
        )
    )


async def update_attribute(
    engine: WorldEngine, args: argparse.Namespace, config: ClwmConfig
) -> None:
    attribute_id = int_input(args.id, "attribute id")
    current = await engine.get_attribute(attribute_id)
    version = int_input(
        args.data_type_version, "data type version", default=current.data_type_version
    )
    data = load_value(document_input(args.data_file, config.editor, dump_value(current.data)))
    updated = Attribute(
        id=attribute_id,
        attribute_type_id=(
            args.attribute_type_id
            if args.attribute_type_id is not None
            else current.attribute_type_id
        ),
        parent_noun_id=(
            args.parent_noun_id if args.parent_noun_id is not None else current.parent_noun_id
        ),
        parent_attribute_id=(
            args.parent_attribute_id
            if args.parent_attribute_id is not None
            else current.parent_attribute_id
        ),
        data=data,
        data_type_version=version,
        metadata=arg_input(args.metadata, "metadata", default=current.metadata),
    )
    _emit(await engine.update_attribute(updated))


async def find_attribute(engine: WorldEngine, args: argparse.Namespace, config: ClwmConfig) -> None:
    _emit_lines(
        await engine.find_attributes(
            parent_noun_id=args.parent_noun_id,
            parent_attribute_id=args.parent_attribute_id,
            attribute_type_id=args.attribute_type_id,
        )
    )


async def get_attribute(engine: WorldEngine, args: argparse.Namespace, config: ClwmConfig) -> None:
    _emit(await engine.get_attribute(int_input(args.id, "attribute id"), populate=True))


# =============================================================================
# History
# =============================================================================


async def history(engine: WorldEngine, args: argparse.Namespace, config: ClwmConfig) -> None:
    kind = HistoryKind.from_str(args.kind)
    rows = await engine.get_history(kind, int_input(args.id, f"{kind.value} id"))
    if rows:
        print(render_history(rows))


HANDLERS: dict[tuple[str, str], Handler] = {
    ("new", "noun-type"): new_noun_type,
    ("update", "noun-type"): update_noun_type,
    ("find", "noun-type"): find_noun_type,
    ("get", "noun-type"): get_noun_type,
    ("new", "noun"): new_noun,
    ("update", "noun"): update_noun,
    ("find", "noun"): find_noun,
    ("get", "noun"): get_noun,
    ("new", "data-type"): new_data_type,
    ("update", "data-type"): update_data_type,
    ("find", "data-type"): find_data_type,
    ("get", "data-type"): get_data_type,
    ("new", "attribute-type"): new_attribute_type,
    ("update", "attribute-type"): update_attribute_type,
    ("find", "attribute-type"): find_attribute_type,
    ("get", "attribute-type"): get_attribute_type,
    ("new", "attribute"): new_attribute,
    ("update", "attribute"): update_attribute,
    ("find", "attribute"): find_attribute,
    ("get", "attribute"): get_attribute,
}


def _bool_arg(text: str) -> bool:
    try:
        return parse_bool(text, "value")
    except CliInputError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _add_kind_parsers(action: argparse.ArgumentParser, command: str) -> None:
    kinds = action.add_subparsers(dest="kind", required=True, metavar="KIND")
    writing = command in ("new", "update")

    noun_type = kinds.add_parser("noun-type", help="Noun types")
    noun = kinds.add_parser("noun", help="Nouns")
    data_type = kinds.add_parser("data-type", help="Versioned data types")
    attribute_type = kinds.add_parser("attribute-type", help="Attribute types")
    attribute = kinds.add_parser("attribute", help="Attributes")

    if command in ("update", "get"):
        for sub in (noun_type, noun, attribute_type, attribute):
            sub.add_argument("id", nargs="?", type=int, help="Record id (prompted if omitted)")

    noun_type.add_argument("--name", help="Type name")
    noun.add_argument("--name", help="Noun name (substring match for find)")
    noun.add_argument("--noun-type", help="Noun type name")
    attribute_type.add_argument("--name", help="Attribute name")
    if command != "update":
        attribute_type.add_argument("--data-type", help="Data type name")

    if command == "get":
        data_type.add_argument("name", nargs="?", help="Data type name (prompted if omitted)")
        data_type.add_argument("--version", type=int, help="Specific version (default: latest)")
    else:
        data_type.add_argument("--name", help="Data type name")
    if command == "find":
        data_type.add_argument(
            "--all-versions", action="store_true", help="List every version, not only the latest"
        )

    if writing:
        for sub in (noun_type, noun, attribute_type, attribute):
            sub.add_argument("--metadata", help="Free-text metadata")
        data_type.add_argument(
            "--definition-file", help="YAML definition document (opens $EDITOR if omitted)"
        )
        attribute_type.add_argument(
            "--multiple-allowed", type=_bool_arg, help="Whether a parent may hold several"
        )
        attribute.add_argument("--data-file", help="YAML value document (opens $EDITOR if omitted)")
        attribute.add_argument("--data-type-version", type=int, help="Data type version")

    if command != "get":
        attribute.add_argument("--attribute-type-id", type=int, help="Attribute type id")
        attribute.add_argument("--parent-noun-id", type=int, help="Parent noun id")
        attribute.add_argument("--parent-attribute-id", type=int, help="Parent attribute id")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="clwm", description="Personal world modeling store")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-f", "--file", help="World descriptor file (default: $CLWM_WORLD_FILE or world.clwm)"
    )
    subparsers = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    create_parser = subparsers.add_parser("create", help="Create a new world")
    create_parser.add_argument("filename", nargs="?", help="World descriptor file to write")
    create_parser.add_argument(
        "data_interface",
        nargs="?",
        help=f"Storage backend ({', '.join(b.value for b in StorageBackend)})",
    )
    create_parser.add_argument("url", nargs="?", help="Storage locator, e.g. sqlite:world.db")

    for command, help_text in (
        ("new", "Create a record"),
        ("update", "Update a record"),
        ("find", "List records"),
        ("get", "Show one record"),
    ):
        _add_kind_parsers(subparsers.add_parser(command, help=help_text), command)

    history_parser = subparsers.add_parser("history", help="Show the change history of a record")
    history_parser.add_argument("kind", choices=[k.value for k in HistoryKind])
    history_parser.add_argument("id", nargs="?", type=int, help="Record id (prompted if omitted)")

    return parser


async def _create(args: argparse.Namespace, config: ClwmConfig) -> None:
    filename = arg_input(args.filename, "world file", default=config.world_file)
    interface = arg_input(args.data_interface, "data interface", default=StorageBackend.SQLITE.value)
    try:
        backend = StorageBackend.from_str(interface)
    except ValueError as e:
        raise CliInputError(str(e)) from e
    url = arg_input(args.url, "url")
    world_file = await create_world(backend, url, filename, config)
    print(f"Created world {filename} ({world_file.data_interface.value} at {world_file.url})")


async def run(args: argparse.Namespace, config: ClwmConfig) -> None:
    """Execute a parsed command."""
    logger.debug(
        "Running command",
        extra={"command": args.command, "kind": getattr(args, "kind", None)},
    )
    if args.command == "create":
        await _create(args, config)
        return
    engine = await open_world(args.file or config.world_file, config)
    if args.command == "history":
        await history(engine, args, config)
        return
    await HANDLERS[(args.command, args.kind)](engine, args, config)


def main(argv: list[str] | None = None) -> int:
    """Entry point for the clwm command.

    Returns:
        Process exit code
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = ClwmConfig.from_env()
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    setup_logging(config)

    try:
        asyncio.run(run(args, config))
    except ClwmError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return 1
    except StorageError as e:
        print(f"storage error: {e}", file=sys.stderr)
        return 2
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
