"""Archive codec.

Thin wrapper around zip archives:

- ``pack`` writes members into a zip. Plain archives are written with
  :mod:`zipfile`; password-protected ones are handed to the external ``zip``
  program because the standard library can only *read* encrypted members.
- ``extract_member`` reads one member back. :mod:`zipfile` locates the central
  directory from the end of the data, so arbitrary leading bytes (the bundle
  prologue) are tolerated.
"""

from dataclasses import dataclass
import io
import logging
import os
import pathlib
import shutil
import subprocess
import tempfile
import zipfile
import zlib


class ArchiveError(RuntimeError):
    """Raised when an archive cannot be written or read."""


class DependencyMissingError(ArchiveError):
    """Raised when a required external program is not installed."""


class MemberNotFoundError(ArchiveError):
    """Raised when a named member is absent from the archive."""


class WrongPasswordError(ArchiveError):
    """Raised when an encrypted member is read without the right password."""


class CorruptArchiveError(ArchiveError):
    """Raised when the archive data is unreadable."""


@dataclass(frozen=True, slots=True)
class ArchiveMember:
    """One named byte stream to store in an archive.

    :ivar name: Member name (a plain basename).
    :ivar data: Member contents.
    """

    name: str
    data: bytes


ArchiveSource = bytes | pathlib.Path


def ensure_tool(name: str) -> str:
    """Resolve an external program on ``PATH``.

    :param name: Program name (e.g. ``zip``).
    :returns: Absolute path to the program.
    :raises DependencyMissingError: If the program cannot be found.
    """

    resolved: str | None = shutil.which(name)
    if resolved is None:
        raise DependencyMissingError(
            f"'{name}' command not found. Please make sure it is installed and in your PATH."
        )
    return resolved


def _validate_members(members: list[ArchiveMember]) -> None:
    """Check member names before anything is written.

    :param members: Members to pack.
    :raises ArchiveError: If a name is unsafe or duplicated.
    """

    seen: set[str] = set()
    for member in members:
        name: str = member.name
        if len(name) == 0 or name in {".", ".."}:
            raise ArchiveError(f"Invalid archive member name: {name!r}")
        if "/" in name or "\\" in name or "\0" in name:
            raise ArchiveError(f"Archive member name must be a plain basename: {name!r}")
        if name in seen:
            raise ArchiveError(f"Duplicate archive member name: {name!r}")
        seen.add(name)


def pack(
    members: list[ArchiveMember],
    *,
    password: str | None = None,
    compresslevel: int = 6,
    workdir: pathlib.Path | None = None,
    logger: logging.Logger | None = None,
) -> bytes:
    """Pack members into zip archive bytes.

    :param members: Members to store. Order is preserved but not guaranteed by readers.
    :param password: Optional password; when set, every member is encrypted.
    :param compresslevel: Deflate compression level (0-9).
    :param workdir: Optional parent directory for the encrypted-pack scratch area.
    :param logger: Optional logger for debug output.
    :returns: Zip archive bytes.
    :raises ArchiveError: If packing fails.
    :raises DependencyMissingError: If encryption is requested and ``zip`` is missing.
    """

    if logger is None:
        logger = logging.getLogger("shell_bundler")

    _validate_members(members)
    if password is not None and len(password) > 0:
        return _pack_encrypted(
            members,
            password=password,
            compresslevel=compresslevel,
            workdir=workdir,
            logger=logger,
        )

    buf: io.BytesIO = io.BytesIO()
    with zipfile.ZipFile(
        buf,
        "w",
        compression=zipfile.ZIP_DEFLATED,
        compresslevel=compresslevel,
    ) as zf:
        for member in members:
            zf.writestr(member.name, member.data)
    return buf.getvalue()


def _pack_encrypted(
    members: list[ArchiveMember],
    *,
    password: str,
    compresslevel: int,
    workdir: pathlib.Path | None,
    logger: logging.Logger,
) -> bytes:
    """Pack members into an encrypted zip using the external ``zip`` program.

    :param members: Members to store.
    :param password: Encryption password.
    :param compresslevel: Deflate compression level (0-9).
    :param workdir: Optional parent directory for the scratch area.
    :param logger: Logger for debug output.
    :returns: Zip archive bytes.
    :raises ArchiveError: If ``zip`` fails.
    """

    zip_exe: str = ensure_tool("zip")
    with tempfile.TemporaryDirectory(prefix="shell_bundler_pack_", dir=workdir) as td:
        root: pathlib.Path = pathlib.Path(td)
        src_dir: pathlib.Path = root / "members"
        src_dir.mkdir(parents=True, exist_ok=True)

        paths: list[str] = []
        for member in members:
            p: pathlib.Path = src_dir / member.name
            p.write_bytes(member.data)
            paths.append(str(p))

        out_path: pathlib.Path = root / "archive.zip"
        # Absolute member paths never start with '-', so zip cannot mistake them for options.
        cmd: list[str] = [
            zip_exe,
            "-q",
            "-j",
            "-X",
            "-nw",
            f"-{compresslevel}",
            "-P",
            password,
            str(out_path),
            *paths,
        ]
        if logger.isEnabledFor(logging.DEBUG) is True:
            shown: list[str] = [*cmd[:7], "********", *cmd[8:]]
            logger.debug(f"shell-bundler: running zip: {' '.join(shown)}")

        proc = subprocess.run(cmd, check=False, capture_output=True)
        if proc.returncode != 0:
            detail: str = proc.stderr.decode("utf-8", errors="replace").strip()
            raise ArchiveError(f"zip invocation failed (exit={proc.returncode}): {detail}")
        if out_path.is_file() is False:
            raise ArchiveError("zip reported success but produced no archive.")
        return out_path.read_bytes()


def _open_archive(archive: ArchiveSource) -> zipfile.ZipFile:
    """Open archive bytes or an archive file for reading.

    :param archive: Raw bytes or a path to a file that ends with a zip archive.
    :returns: Open :class:`zipfile.ZipFile`.
    :raises CorruptArchiveError: If no zip structure can be found.
    """

    try:
        if isinstance(archive, bytes):
            return zipfile.ZipFile(io.BytesIO(archive), mode="r")
        return zipfile.ZipFile(os.fspath(archive), mode="r")
    except zipfile.BadZipFile as exc:
        raise CorruptArchiveError(f"Not a readable zip archive: {exc}") from exc


def list_members(archive: ArchiveSource) -> list[str]:
    """List member names in an archive.

    :param archive: Raw bytes or a path to a file that ends with a zip archive.
    :returns: Member names in central-directory order.
    """

    with _open_archive(archive) as zf:
        return zf.namelist()


def is_encrypted(archive: ArchiveSource, name: str) -> bool:
    """Report whether a member is stored encrypted.

    :param archive: Raw bytes or a path to a file that ends with a zip archive.
    :param name: Member name.
    :returns: ``True`` if the member carries the encryption flag.
    :raises MemberNotFoundError: If the member does not exist.
    """

    with _open_archive(archive) as zf:
        try:
            info: zipfile.ZipInfo = zf.getinfo(name)
        except KeyError as exc:
            raise MemberNotFoundError(f"Archive member not found: {name!r}") from exc
        return (info.flag_bits & 0x1) != 0


def extract_member(
    archive: ArchiveSource,
    name: str,
    *,
    password: str | None = None,
) -> bytes:
    """Extract one member as bytes.

    The member is decompressed and CRC-checked in full before it is returned,
    so a failed decryption never yields partial plaintext.

    :param archive: Raw bytes or a path to a file that ends with a zip archive.
    :param name: Member name.
    :param password: Password for encrypted members.
    :returns: Member contents.
    :raises MemberNotFoundError: If the member does not exist.
    :raises WrongPasswordError: If the member is encrypted and the password is missing or wrong.
    :raises CorruptArchiveError: If the archive or member data is damaged.
    """

    pwd: bytes | None = None
    if password is not None and len(password) > 0:
        pwd = password.encode("utf-8")

    with _open_archive(archive) as zf:
        try:
            info: zipfile.ZipInfo = zf.getinfo(name)
        except KeyError as exc:
            raise MemberNotFoundError(f"Archive member not found: {name!r}") from exc

        encrypted: bool = (info.flag_bits & 0x1) != 0
        if encrypted is True and pwd is None:
            raise WrongPasswordError(f"Password required but not provided for {name!r}")

        try:
            return zf.read(info, pwd=pwd)
        except RuntimeError as exc:
            # zipfile signals both "password required" and "bad password" this way.
            raise WrongPasswordError(f"Invalid password for {name!r}") from exc
        except (zipfile.BadZipFile, zlib.error, EOFError) as exc:
            if encrypted is True:
                # A wrong key that slips past the check byte decrypts to garbage.
                raise WrongPasswordError(f"Invalid password for {name!r}") from exc
            raise CorruptArchiveError(f"Corrupt archive member {name!r}: {exc}") from exc
