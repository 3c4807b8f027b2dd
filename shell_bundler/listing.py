"""Read the command table of an existing bundle."""

import pathlib

from shell_bundler.archive import extract_member, is_encrypted
from shell_bundler.manifest import MANIFEST_MEMBER, parse_manifest


def manifest_is_encrypted(artifact_path: pathlib.Path) -> bool:
    """Report whether a bundle needs a password to read its manifest.

    :param artifact_path: Bundle file.
    :returns: ``True`` for password-protected bundles.
    """

    return is_encrypted(artifact_path, MANIFEST_MEMBER)


def read_bundle_commands(
    artifact_path: pathlib.Path,
    *,
    password: str | None = None,
) -> list[tuple[str, str]]:
    """List the commands packaged in a bundle.

    :param artifact_path: Bundle file.
    :param password: Password for protected bundles.
    :returns: ``(command, member)`` pairs in manifest order.
    :raises shell_bundler.archive.ArchiveError: If the manifest cannot be extracted.
    :raises shell_bundler.manifest.ManifestError: If the manifest is malformed.
    """

    data: bytes = extract_member(artifact_path, MANIFEST_MEMBER, password=password)
    return parse_manifest(data)
