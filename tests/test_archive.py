from __future__ import annotations

import io
import zipfile
from pathlib import Path

import pytest

import shell_bundler.archive as archive
from shell_bundler.archive import (
    ArchiveError,
    ArchiveMember,
    CorruptArchiveError,
    DependencyMissingError,
    MemberNotFoundError,
    WrongPasswordError,
    extract_member,
    is_encrypted,
    list_members,
    pack,
)

from .helpers import requires_zip


PROLOGUE = b"#!/usr/bin/env bash\necho not an archive\nexit 0\n"


def test_round_trip_without_password() -> None:
    data = pack([ArchiveMember("speak.sh", b"echo hi\n"), ArchiveMember("moo.sh", b"echo moo\n")])

    assert extract_member(data, "speak.sh") == b"echo hi\n"
    assert extract_member(data, "moo.sh", password=None) == b"echo moo\n"
    assert sorted(list_members(data)) == ["moo.sh", "speak.sh"]
    assert is_encrypted(data, "speak.sh") is False


def test_extract_tolerates_leading_bytes(tmp_path: Path) -> None:
    payload = bytes(range(256)) * 8
    data = PROLOGUE + pack([ArchiveMember("blob.bin", payload)])
    bundle = tmp_path / "bundle"
    bundle.write_bytes(data)

    assert extract_member(data, "blob.bin") == payload
    assert extract_member(bundle, "blob.bin") == payload


def test_generic_zip_readers_see_the_members() -> None:
    data = PROLOGUE + pack([ArchiveMember("a.sh", b"a"), ArchiveMember("b.sh", b"b")])

    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        assert zf.testzip() is None
        assert set(zf.namelist()) == {"a.sh", "b.sh"}


def test_missing_member() -> None:
    data = pack([ArchiveMember("a.sh", b"a")])

    with pytest.raises(MemberNotFoundError):
        extract_member(data, "b.sh")


def test_not_an_archive() -> None:
    with pytest.raises(CorruptArchiveError):
        extract_member(PROLOGUE, "a.sh")


def test_damaged_member_data() -> None:
    data = bytearray(pack([ArchiveMember("a.sh", b"echo hello world\n" * 20)], compresslevel=0))
    idx = bytes(data).find(b"hello world")
    data[idx : idx + 5] = b"HELLO"

    with pytest.raises(CorruptArchiveError):
        extract_member(bytes(data), "a.sh")


@pytest.mark.parametrize("name", ["", "..", "dir/a.sh", "..\\a.sh"])
def test_unsafe_member_names_are_rejected(name: str) -> None:
    with pytest.raises(ArchiveError):
        pack([ArchiveMember(name, b"x")])


def test_duplicate_member_names_are_rejected() -> None:
    with pytest.raises(ArchiveError, match="Duplicate"):
        pack([ArchiveMember("a.sh", b"1"), ArchiveMember("a.sh", b"2")])


def test_encryption_without_zip_is_a_missing_dependency(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(archive.shutil, "which", lambda name: None)

    with pytest.raises(DependencyMissingError, match="'zip' command not found"):
        pack([ArchiveMember("a.sh", b"a")], password="secret")


def test_empty_password_packs_without_encryption(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(archive.shutil, "which", lambda name: None)

    data = pack([ArchiveMember("a.sh", b"a")], password="")

    assert is_encrypted(data, "a.sh") is False


@requires_zip
@pytest.mark.parametrize("password", ["secret", "pässwörd with spaces", "p@ss w0rd!"])
def test_round_trip_with_password(password: str) -> None:
    data = pack([ArchiveMember("-odd name.sh", b"echo hi\n"), ArchiveMember("b.sh", b"b" * 5000)], password=password)

    assert is_encrypted(data, "-odd name.sh") is True
    assert extract_member(PROLOGUE + data, "-odd name.sh", password=password) == b"echo hi\n"
    assert extract_member(data, "b.sh", password=password) == b"b" * 5000


@requires_zip
def test_wrong_password_yields_nothing() -> None:
    data = pack([ArchiveMember("a.sh", b"top secret\n")], password="secret")

    with pytest.raises(WrongPasswordError):
        extract_member(data, "a.sh", password="wrong")
    with pytest.raises(WrongPasswordError):
        extract_member(data, "a.sh")


@requires_zip
def test_wrong_password_is_deterministic() -> None:
    data = pack([ArchiveMember("a.sh", b"top secret\n" * 100)], password="secret")

    for candidate in ("wrong", "Secret", "secret ", "s"):
        with pytest.raises(WrongPasswordError):
            extract_member(data, "a.sh", password=candidate)
