"""Replay of recorded index and quant commands.

A workflow description is a JSON or YAML mapping with optional ``index``
and ``quant`` sections, each mapping a record name to an object with a
``cmd`` field:

    {
      "index": {"human_ref": {"cmd": "fryflow index --fasta ... -o idx"}},
      "quant": {"pbmc": {"cmd": ["fryflow", "quant", "-i", "idx/index", ...]}}
    }

Every stored command goes through the same command-line parser as a
direct invocation, so option semantics have a single definition. All index
commands (across all files) run before any quant command.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Tuple, Union

from ..config import AppHome
from ..io import read_structured
from .errors import ConfigurationError
from .options import IndexOptions, QuantOptions

logger = logging.getLogger(__name__)

WORKFLOW_SECTIONS = ("index", "quant")
SUBCOMMANDS = ("index", "quant", "run-workflow", "add-chemistry", "inspect")

CommandOptions = Union[IndexOptions, QuantOptions]
CommandParser = Callable[[Sequence[str]], Any]


@dataclass(frozen=True)
class ReplayCommand:
    """One recorded command.

    Attributes
    ----------
    section : str
        "index" or "quant"
    name : str
        Record name within the section
    source : Path
        Workflow file it came from
    argv : Tuple[str, ...]
        Command tokens, without a leading program name
    """

    section: str
    name: str
    source: Path
    argv: Tuple[str, ...]


def tokenize_command(cmd: Any) -> List[str]:
    """Split a stored command into argv tokens.

    Strings are split on whitespace; lists are taken as already tokenized.
    A leading program name (any token that is not a subcommand) is dropped.
    """
    if isinstance(cmd, str):
        tokens = cmd.strip().strip('"').split()
    elif isinstance(cmd, (list, tuple)):
        tokens = [str(token) for token in cmd]
    else:
        raise ConfigurationError(
            f"A recorded command must be a string or a list of arguments, got {type(cmd).__name__}"
        )
    if tokens and tokens[0] not in SUBCOMMANDS:
        tokens = tokens[1:]
    return tokens


def read_workflow(path: Path) -> Tuple[List[ReplayCommand], List[ReplayCommand]]:
    """Read one workflow file into (index commands, quant commands).

    Raises
    ------
    ConfigurationError
        If a section is not a mapping, or a record has no ``cmd``.
    PersistenceError
        If the file cannot be read or decoded.
    """
    path = Path(path)
    record = read_structured(path)
    sections: List[List[ReplayCommand]] = []
    for section in WORKFLOW_SECTIONS:
        entries = record.get(section) or {}
        if not isinstance(entries, dict):
            raise ConfigurationError(f"The '{section}' section of {path} must be a mapping")
        commands = []
        for name, entry in entries.items():
            logger.info("processing %s - %s", section, name)
            if not isinstance(entry, dict) or entry.get("cmd") is None:
                raise ConfigurationError(f"{section} record '{name}' in {path} has no 'cmd' field")
            commands.append(
                ReplayCommand(section, str(name), path, tuple(tokenize_command(entry["cmd"])))
            )
        sections.append(commands)
    return sections[0], sections[1]


def collect_commands(paths: Sequence[Path]) -> List[ReplayCommand]:
    """Gather the commands of all files: every index command, then every quant command."""
    missing = [str(p) for p in paths if not Path(p).is_file()]
    if missing:
        raise ConfigurationError(f"Workflow file(s) not found: {', '.join(missing)}")

    logger.info("Parsing provided workflow files")
    index_commands: List[ReplayCommand] = []
    quant_commands: List[ReplayCommand] = []
    for path in paths:
        index_part, quant_part = read_workflow(Path(path))
        index_commands.extend(index_part)
        quant_commands.extend(quant_part)

    logger.info(
        "Found %d index commands and %d quant commands",
        len(index_commands),
        len(quant_commands),
    )
    return index_commands + quant_commands


def _default_parser(argv: Sequence[str]) -> Any:
    from ..cli.main import parse_command_line

    return parse_command_line(argv)


def parse_replay_command(command: ReplayCommand, parse: CommandParser) -> CommandOptions:
    """Parse a recorded command and check it belongs to its section."""
    options = parse(list(command.argv))
    expected = IndexOptions if command.section == "index" else QuantOptions
    if not isinstance(options, expected):
        found = getattr(options, "command", type(options).__name__)
        raise ConfigurationError(
            f"{command.section} record '{command.name}' in {command.source} holds a "
            f"'{found}' command; only '{command.section}' commands can be replayed there"
        )
    return options


def run_workflow(
    home: AppHome,
    paths: Sequence[Path],
    dry_run: bool = False,
    parse: Optional[CommandParser] = None,
    run_index: Optional[Callable[..., Any]] = None,
    run_quant: Optional[Callable[..., Any]] = None,
) -> List[ReplayCommand]:
    """Replay the index and quant commands recorded in workflow files.

    All commands are parsed before the first one runs, so a malformed
    record anywhere aborts the replay before anything is spawned. The first
    failing command aborts the remaining queue.

    Parameters
    ----------
    home : AppHome
        Home directory passed to every replayed command
    paths : Sequence[Path]
        Workflow files, in order
    dry_run : bool
        Plan every command without running it
    parse : Callable, optional
        argv -> options parser; defaults to the fryflow command-line parser
    run_index, run_quant : Callable, optional
        Command drivers; default to :mod:`fryflow.core.engine`

    Returns
    -------
    List[ReplayCommand]
        The commands, in execution order
    """
    if parse is None:
        parse = _default_parser
    if run_index is None or run_quant is None:
        from . import engine

        run_index = run_index or engine.run_index
        run_quant = run_quant or engine.run_quant

    commands = collect_commands(paths)
    parsed = [(command, parse_replay_command(command, parse)) for command in commands]

    logger.info("Running commands")
    for command, options in parsed:
        logger.info("Replaying %s - %s: %s", command.section, command.name, " ".join(command.argv))
        if isinstance(options, IndexOptions):
            run_index(home, options, dry_run=dry_run)
        else:
            run_quant(home, options, dry_run=dry_run)
    return commands
