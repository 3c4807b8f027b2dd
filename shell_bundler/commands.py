"""Command specification helpers.

A bundle maps *command names* to *source scripts*. Users supply the mapping as
``command:path`` pairs, either comma-separated in one argument or spread over
several arguments (``-s speak:speak.sh,moo:moo.sh -s quack:quack.sh``).
"""

from dataclasses import dataclass
import pathlib
import re
from typing import Iterator


class CommandSpecError(ValueError):
    """Raised when command pairs cannot be parsed."""


@dataclass(frozen=True, slots=True)
class CommandEntry:
    """A single ``command -> script`` mapping.

    :ivar command: Command name typed by the user at run time.
    :ivar source: Script path on the build host.
    """

    command: str
    source: pathlib.Path

    @property
    def member_name(self) -> str:
        """Archive member name (the script's basename)."""

        return self.source.name


@dataclass(frozen=True, slots=True)
class CommandSpec:
    """Immutable, ordered ``command -> script`` mapping.

    :ivar entries: Entries in the order the user supplied them.
    """

    entries: tuple[CommandEntry, ...]

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for entry in self.entries:
            if entry.command in seen:
                raise CommandSpecError(f"Duplicate command name: {entry.command!r}")
            seen.add(entry.command)

    def __iter__(self) -> Iterator[CommandEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def commands(self) -> list[str]:
        """List command names.

        :returns: Command names in input order.
        """

        return [e.command for e in self.entries]

    def get(self, command: str) -> pathlib.Path | None:
        """Look up the script for a command.

        :param command: Command name.
        :returns: Script path, or ``None`` if the command is unknown.
        """

        for entry in self.entries:
            if entry.command == command:
                return entry.source
        return None

    @classmethod
    def from_mapping(cls, mapping: dict[str, str | pathlib.Path]) -> "CommandSpec":
        """Build a spec from a plain ``{command: path}`` dict.

        :param mapping: Command names to script paths.
        :returns: Command spec preserving dict order.
        """

        entries: list[CommandEntry] = []
        for command, source in mapping.items():
            _validate_command_name(command)
            entries.append(CommandEntry(command=command, source=pathlib.Path(source)))
        return cls(entries=tuple(entries))


_WHITESPACE_RE: re.Pattern[str] = re.compile(r"\s")


def _validate_command_name(command: str) -> None:
    """Validate a command name.

    :param command: Candidate command name.
    :raises CommandSpecError: If the name is empty or contains whitespace.
    """

    if len(command) == 0:
        raise CommandSpecError("Command name must not be empty.")
    if _WHITESPACE_RE.search(command) is not None:
        raise CommandSpecError(f"Command name must not contain whitespace: {command!r}")


def parse_command_pairs(values: list[str]) -> CommandSpec:
    """Parse ``command:path`` pairs into a :class:`~CommandSpec`.

    Each value may hold several comma-separated pairs. The path is everything
    after the first ``:``, so script paths may themselves contain colons.

    :param values: Raw option values.
    :returns: Parsed command spec.
    :raises CommandSpecError: If a pair is malformed or a command repeats.
    """

    entries: list[CommandEntry] = []
    for value in values:
        for raw in value.split(","):
            pair: str = raw.strip()
            if len(pair) == 0:
                continue
            command, sep, path = pair.partition(":")
            if sep == "":
                raise CommandSpecError(f"Expected COMMAND:SCRIPT_PATH, got {pair!r}")
            command = command.strip()
            path = path.strip()
            _validate_command_name(command)
            if len(path) == 0:
                raise CommandSpecError(f"Missing script path for command {command!r}")
            entries.append(CommandEntry(command=command, source=pathlib.Path(path)))

    if len(entries) == 0:
        raise CommandSpecError("No script files specified.")
    return CommandSpec(entries=tuple(entries))
