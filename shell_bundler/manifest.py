"""Manifest serializer.

The manifest is an archive member holding bash source: a table of
percent-encoded ``command, member`` pairs followed by fixed usage and dispatch
routines. The prologue ``eval``s it and calls ``__bundle_dispatch "$@"``.

Only the table varies between bundles. Encoded entries contain nothing but
``[A-Za-z0-9_.~%-]``, so command names with quotes, spaces or ``$`` can never
change the meaning of the generated shell code.
"""

import re
import textwrap
from typing import Iterable
import urllib.parse


MANIFEST_MEMBER: str = "__manifest__"


class ManifestError(ValueError):
    """Raised when a manifest cannot be serialized or parsed."""


_HEADER: str = "# shell-bundler manifest v1\n"

_TABLE_START: str = "SHELL_BUNDLE_COMMANDS=(\n"
_TABLE_END: str = ")\n"

_ROUTINES: str = textwrap.dedent(
    r'''
    __bundle_decode() {
        local pct='%' esc='\x'
        printf -v "$2" '%b' "${1//"$pct"/"$esc"}"
    }

    __bundle_usage() {
        local i name
        echo "Usage: $0 [command] [args...]" >&2
        echo "" >&2
        echo "Available commands:" >&2
        for ((i = 0; i < ${#SHELL_BUNDLE_COMMANDS[@]}; i += 2)); do
            __bundle_decode "${SHELL_BUNDLE_COMMANDS[i]}" name
            echo "  $name" >&2
        done
        echo "" >&2
        exit 1
    }

    __bundle_dispatch() {
        local i name member
        if [[ $# -eq 0 ]]; then
            __bundle_usage
        fi
        for ((i = 0; i < ${#SHELL_BUNDLE_COMMANDS[@]}; i += 2)); do
            __bundle_decode "${SHELL_BUNDLE_COMMANDS[i]}" name
            if [[ "$name" == "$1" ]]; then
                __bundle_decode "${SHELL_BUNDLE_COMMANDS[i + 1]}" member
                shift
                execute_bundled_script "$member" "$@"
                exit $?
            fi
        done
        echo "Invalid command: $1" >&2
        __bundle_usage
    }
    '''
)

_ENTRY_RE: re.Pattern[str] = re.compile(r"^    ([A-Za-z0-9_.~%-]+) ([A-Za-z0-9_.~%-]+)$")


def encode_token(value: str) -> str:
    """Percent-encode a command or member name for the manifest table.

    :param value: Raw name.
    :returns: Encoded name using only ``[A-Za-z0-9_.~%-]``.
    """

    return urllib.parse.quote(value, safe="", encoding="utf-8", errors="strict")


def decode_token(value: str) -> str:
    """Reverse :func:`encode_token`.

    :param value: Encoded name.
    :returns: Raw name.
    """

    return urllib.parse.unquote(value, encoding="utf-8", errors="strict")


def serialize_manifest(entries: Iterable[tuple[str, str]]) -> bytes:
    """Render the manifest member.

    :param entries: ``(command, member)`` pairs.
    :returns: UTF-8 bash source.
    :raises ManifestError: If the table is empty, a command repeats, or a command is reserved.
    """

    lines: list[str] = []
    seen: set[str] = set()
    for command, member in entries:
        if command == MANIFEST_MEMBER or member == MANIFEST_MEMBER:
            raise ManifestError(f"{MANIFEST_MEMBER!r} is reserved and cannot be dispatched to.")
        if len(command) == 0 or len(member) == 0:
            raise ManifestError("Manifest entries must have a command and a member name.")
        if command in seen:
            raise ManifestError(f"Duplicate command in manifest: {command!r}")
        seen.add(command)
        lines.append(f"    {encode_token(command)} {encode_token(member)}\n")

    if len(lines) == 0:
        raise ManifestError("Manifest must contain at least one command.")

    text: str = _HEADER + _TABLE_START + "".join(lines) + _TABLE_END + _ROUTINES
    return text.encode("utf-8")


def parse_manifest(data: bytes) -> list[tuple[str, str]]:
    """Read the command table back out of a manifest member.

    :param data: Manifest bytes as stored in the archive.
    :returns: ``(command, member)`` pairs in table order.
    :raises ManifestError: If the data is not a manifest.
    """

    try:
        text: str = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ManifestError("Manifest is not valid UTF-8.") from exc

    if text.startswith(_HEADER) is False:
        raise ManifestError("Missing manifest header.")

    start: int = text.find(_TABLE_START)
    if start < 0:
        raise ManifestError("Missing command table.")
    body_start: int = start + len(_TABLE_START)
    end: int = text.find(_TABLE_END, body_start)
    if end < 0:
        raise ManifestError("Unterminated command table.")

    entries: list[tuple[str, str]] = []
    for line in text[body_start:end].splitlines():
        m = _ENTRY_RE.match(line)
        if m is None:
            raise ManifestError(f"Malformed manifest entry: {line!r}")
        try:
            entries.append((decode_token(m.group(1)), decode_token(m.group(2))))
        except UnicodeDecodeError as exc:
            raise ManifestError(f"Undecodable manifest entry: {line!r}") from exc
    return entries
