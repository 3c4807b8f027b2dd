"""Bundle builder.

This module assembles a polyglot "bash prologue + zip archive" file:

- It validates the command spec and stages a copy of every script under its
  basename in a throwaway directory.
- It serializes the command manifest and packs it together with the staged
  scripts into a zip (optionally password-protected).
- It writes the bash prologue followed by the zip bytes to a temporary file
  next to the output, marks it executable and moves it into place.
"""

import logging
import os
import pathlib
import shutil
import stat
import tempfile
import time

from shell_bundler.archive import ArchiveMember, pack
from shell_bundler.commands import CommandSpec
from shell_bundler.config import BundleOptions
from shell_bundler.manifest import MANIFEST_MEMBER, serialize_manifest
from shell_bundler.runtime import render_prologue


class BuildError(RuntimeError):
    """Raised when bundling fails."""


class ValidationError(BuildError):
    """Raised when build inputs are rejected before any work is done."""


# unzip treats member names as wildcard patterns.
_WILDCARD_CHARS: frozenset[str] = frozenset("*?[]\\")


def _validate_sources(commands: CommandSpec) -> None:
    """Check that every script exists and is readable.

    :param commands: Command spec.
    :raises ValidationError: If a script is missing or unreadable.
    """

    if len(commands) == 0:
        raise ValidationError("No script files specified.")

    for entry in commands:
        source: pathlib.Path = entry.source
        if source.exists() is False:
            raise ValidationError(f"Script file '{source}' does not exist.")
        if source.is_file() is False:
            raise ValidationError(f"Script path '{source}' is not a regular file.")
        if os.access(source, os.R_OK) is False:
            raise ValidationError(f"Script file '{source}' is not readable.")


def _validate_basenames(commands: CommandSpec) -> None:
    """Check that no two scripts would share an archive member name.

    :param commands: Command spec.
    :raises ValidationError: If two scripts share a basename.
    """

    owners: dict[str, pathlib.Path] = {}
    for entry in commands:
        name: str = entry.member_name
        previous: pathlib.Path | None = owners.get(name)
        if previous is not None:
            raise ValidationError(
                f"Script files '{previous}' and '{entry.source}' share the basename '{name}'."
            )
        owners[name] = entry.source


def _validate_reserved_names(commands: CommandSpec) -> None:
    """Check command and member names against the reserved manifest name.

    :param commands: Command spec.
    :raises ValidationError: If a name is reserved or unsafe for ``unzip``.
    """

    for entry in commands:
        if entry.command == MANIFEST_MEMBER:
            raise ValidationError(f"Command name '{MANIFEST_MEMBER}' is reserved.")
        if entry.member_name == MANIFEST_MEMBER:
            raise ValidationError(f"Script basename '{MANIFEST_MEMBER}' is reserved: {entry.source}")
        bad: set[str] = _WILDCARD_CHARS.intersection(entry.member_name)
        if len(bad) > 0:
            raise ValidationError(
                f"Script basename '{entry.member_name}' contains wildcard characters {''.join(sorted(bad))!r}."
            )


def _validate_output(commands: CommandSpec, output_path: pathlib.Path, force: bool) -> None:
    """Check the output path.

    :param commands: Command spec.
    :param output_path: Requested output path.
    :param force: Whether an existing file may be overwritten.
    :raises ValidationError: If the output cannot be written.
    """

    if output_path.is_dir() is True:
        raise ValidationError(f"Output path '{output_path}' is a directory.")
    if output_path.exists() is True:
        if force is False:
            raise ValidationError(
                f"Output file '{output_path}' already exists. Use -f to force overwriting."
            )
        out_resolved: pathlib.Path = output_path.resolve()
        for entry in commands:
            if entry.source.resolve() == out_resolved:
                raise ValidationError(f"Output file '{output_path}' is one of the bundled scripts.")


def validate_build(commands: CommandSpec, output_path: pathlib.Path, *, force: bool) -> None:
    """Run every build precondition in order; the first failure wins.

    :param commands: Command spec.
    :param output_path: Requested output path.
    :param force: Whether an existing output may be overwritten.
    :raises ValidationError: On the first failed precondition.
    """

    _validate_sources(commands)
    _validate_basenames(commands)
    _validate_reserved_names(commands)
    _validate_output(commands, output_path, force)


def _normalize_password(password: str | None, logger: logging.Logger) -> str | None:
    """Map an empty password to "no password".

    :param password: Password as supplied by the caller.
    :param logger: Logger used to report the downgrade.
    :returns: The password, or ``None`` when protection is off.
    """

    if password is None:
        return None
    if len(password) == 0:
        logger.warning("shell-bundler: empty password given; the bundle will NOT be password-protected")
        return None
    return password


def _stage_scripts(*, commands: CommandSpec, stage_dir: pathlib.Path) -> list[ArchiveMember]:
    """Copy scripts into the staging directory and load them as archive members.

    :param commands: Command spec.
    :param stage_dir: Staging directory.
    :returns: One member per script, named by basename.
    """

    members: list[ArchiveMember] = []
    for entry in commands:
        staged: pathlib.Path = stage_dir / entry.member_name
        shutil.copy2(entry.source, staged)
        members.append(ArchiveMember(name=entry.member_name, data=staged.read_bytes()))
    return members


def _mark_executable(path: pathlib.Path) -> None:
    """Add the execute bits to a file's current mode.

    :param path: File to update.
    """

    mode: int = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def _write_bundle(
    *,
    output_path: pathlib.Path,
    prologue: str,
    archive_bytes: bytes,
) -> None:
    """Write prologue + archive to a temporary file and move it onto ``output_path``.

    :param output_path: Final output path.
    :param prologue: Bash prologue text.
    :param archive_bytes: Zip archive bytes.
    """

    out_dir: pathlib.Path = output_path.parent
    out_dir.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{output_path.name}.", suffix=".tmp", dir=out_dir)
    tmp_path: pathlib.Path = pathlib.Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(prologue.encode("utf-8"))
            f.write(archive_bytes)
        # mkstemp creates 0600; start from a regular 0644 before adding execute bits.
        tmp_path.chmod(0o644)
        _mark_executable(tmp_path)
        tmp_path.replace(output_path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def assemble_bundle(
    *,
    commands: CommandSpec,
    output_path: pathlib.Path,
    password: str | None = None,
    force: bool = False,
    options: BundleOptions | None = None,
    logger: logging.Logger | None = None,
) -> pathlib.Path:
    """Build a bundle.

    :param commands: Command names mapped to script paths.
    :param output_path: Output path for the bundle.
    :param password: Optional password; an empty string means "no password".
    :param force: Overwrite ``output_path`` if it exists.
    :param options: Resolved build options (defaults if omitted).
    :param logger: Optional logger for build progress output.
    :returns: The output path.
    :raises ValidationError: If the inputs are rejected.
    :raises shell_bundler.archive.ArchiveError: If the archive cannot be built.
    """

    if logger is None:
        logger = logging.getLogger("shell_bundler")
    if options is None:
        options = BundleOptions()

    validate_build(commands, output_path, force=force)
    password = _normalize_password(password, logger)
    protected: bool = password is not None

    t_total0: float = time.perf_counter()
    logger.info(f"shell-bundler: output={output_path}")
    logger.info(f"shell-bundler: commands={', '.join(commands.commands())}")
    logger.info(f"shell-bundler: password_protected={'yes' if protected is True else 'no'}")
    if protected is True:
        logger.info(f"shell-bundler: run-time password variable={options.token_var}")

    with tempfile.TemporaryDirectory(prefix="shell_bundler_build_") as td:
        build_root: pathlib.Path = pathlib.Path(td)
        stage_dir: pathlib.Path = build_root / "staging"
        stage_dir.mkdir(parents=True, exist_ok=True)

        members: list[ArchiveMember] = _stage_scripts(commands=commands, stage_dir=stage_dir)
        if logger.isEnabledFor(logging.DEBUG) is True:
            for member in members:
                logger.debug(f"shell-bundler: staged {member.name} ({len(member.data)} bytes)")

        manifest_bytes: bytes = serialize_manifest(
            (entry.command, entry.member_name) for entry in commands
        )
        members.insert(0, ArchiveMember(name=MANIFEST_MEMBER, data=manifest_bytes))

        t_pack0: float = time.perf_counter()
        archive_bytes: bytes = pack(
            members,
            password=password,
            compresslevel=options.compresslevel,
            workdir=build_root,
            logger=logger,
        )
        t_pack1: float = time.perf_counter()
        logger.info(
            f"shell-bundler: archive built ({len(archive_bytes)} bytes, {len(members)} members) "
            f"in {t_pack1 - t_pack0:.2f}s"
        )

        prologue: str = render_prologue(password_protected=protected, token_var=options.token_var)
        _write_bundle(output_path=output_path, prologue=prologue, archive_bytes=archive_bytes)

    t_total1: float = time.perf_counter()
    out_size: int = output_path.stat().st_size
    logger.info(f"shell-bundler: wrote {output_path} ({out_size} bytes) in {t_total1 - t_total0:.2f}s")
    return output_path
