from __future__ import annotations

import re
import shutil
import subprocess
from pathlib import Path

import pytest

from shell_bundler.manifest import (
    MANIFEST_MEMBER,
    ManifestError,
    decode_token,
    encode_token,
    parse_manifest,
    serialize_manifest,
)

from .helpers import requires_bash


AWKWARD_NAMES = [
    ("speak", "speak.sh"),
    ("it's", "quote's.sh"),
    ('say"$(touch pwned)"', "dollar$HOME.sh"),
    ("naïve", "ünïcode.sh"),
    ("50%off", "percent%41.sh"),
    ("semi;colon", "back`tick`.sh"),
]


def _table_lines(data: bytes) -> list[str]:
    text = data.decode("utf-8")
    start = text.index("SHELL_BUNDLE_COMMANDS=(\n") + len("SHELL_BUNDLE_COMMANDS=(\n")
    return text[start : text.index(")\n", start)].splitlines()


def test_round_trip_preserves_entries() -> None:
    data = serialize_manifest(AWKWARD_NAMES)

    assert parse_manifest(data) == AWKWARD_NAMES


def test_table_contains_only_safe_characters() -> None:
    lines = _table_lines(serialize_manifest(AWKWARD_NAMES))

    assert len(lines) == len(AWKWARD_NAMES)
    for line in lines:
        assert re.fullmatch(r"    [A-Za-z0-9_.~%-]+ [A-Za-z0-9_.~%-]+", line)


def test_token_encoding() -> None:
    assert encode_token("plain-name_1.sh") == "plain-name_1.sh"
    assert encode_token("a b/c") == "a%20b%2Fc"
    assert decode_token(encode_token("50%off")) == "50%off"


def test_reserved_command_is_rejected() -> None:
    with pytest.raises(ManifestError, match="reserved"):
        serialize_manifest([(MANIFEST_MEMBER, "x.sh")])


def test_duplicate_command_is_rejected() -> None:
    with pytest.raises(ManifestError, match="Duplicate"):
        serialize_manifest([("a", "a.sh"), ("a", "b.sh")])


def test_empty_manifest_is_rejected() -> None:
    with pytest.raises(ManifestError):
        serialize_manifest([])


@pytest.mark.parametrize(
    "data",
    [
        b"#!/bin/bash\necho hi\n",
        b"# shell-bundler manifest v1\nno table here\n",
        b"# shell-bundler manifest v1\nSHELL_BUNDLE_COMMANDS=(\n    a a.sh\n",
        b"# shell-bundler manifest v1\nSHELL_BUNDLE_COMMANDS=(\n    a 'a.sh'\n)\n",
        b"\xff\xfe",
    ],
)
def test_parse_rejects_malformed_data(data: bytes) -> None:
    with pytest.raises(ManifestError):
        parse_manifest(data)


_DRIVER = r"""
execute_bundled_script() {
    printf 'member=%s\n' "$1"
    shift
    printf 'arg=%s\n' "$@"
    return 7
}
eval "$(cat "$MANIFEST_PATH")"
__bundle_dispatch "$@"
"""


def _dispatch(tmp_path: Path, *args: str) -> subprocess.CompletedProcess[str]:
    manifest_path = tmp_path / MANIFEST_MEMBER
    manifest_path.write_bytes(serialize_manifest(AWKWARD_NAMES))
    return subprocess.run(
        [shutil.which("bash") or "bash", "-c", _DRIVER, "babel", *args],
        capture_output=True,
        text=True,
        encoding="utf-8",
        cwd=tmp_path,
        env={"MANIFEST_PATH": str(manifest_path), "PATH": "/usr/bin:/bin", "LC_ALL": "C.UTF-8"},
        check=False,
    )


@requires_bash
def test_dispatch_passes_member_and_remaining_args(tmp_path: Path) -> None:
    proc = _dispatch(tmp_path, 'say"$(touch pwned)"', "hello world", "")

    assert proc.returncode == 7
    assert proc.stdout == 'member=dollar$HOME.sh\narg=hello world\narg=\n'
    assert not (tmp_path / "pwned").exists()


@requires_bash
def test_dispatch_decodes_non_ascii_names(tmp_path: Path) -> None:
    proc = _dispatch(tmp_path, "naïve")

    assert proc.returncode == 7
    assert proc.stdout.startswith("member=ünïcode.sh\n")


@requires_bash
def test_dispatch_unknown_command_prints_usage(tmp_path: Path) -> None:
    proc = _dispatch(tmp_path, "bark")

    assert proc.returncode == 1
    assert proc.stdout == ""
    lines = proc.stderr.splitlines()
    assert lines[0] == "Invalid command: bark"
    assert lines[1] == "Usage: babel [command] [args...]"
    assert "Available commands:" in lines
    assert {line.strip() for line in lines[4:] if line.strip()} == {name for name, _ in AWKWARD_NAMES}


@requires_bash
def test_dispatch_without_arguments_prints_usage(tmp_path: Path) -> None:
    proc = _dispatch(tmp_path)

    assert proc.returncode == 1
    assert "Invalid command" not in proc.stderr
    assert proc.stderr.startswith("Usage: babel [command] [args...]\n")
