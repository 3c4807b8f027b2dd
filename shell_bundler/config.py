"""Build option resolution.

Options come from three places, first match wins:

- explicit CLI values,
- environment overrides (``SHELL_BUNDLER_TOKEN_VAR``, ``SHELL_BUNDLER_COMPRESSLEVEL``),
- built-in defaults.
"""

from dataclasses import dataclass
import os
import re
from typing import Mapping


class ConfigError(ValueError):
    """Raised when build options are invalid."""


DEFAULT_TOKEN_VAR: str = "TOKEN"
DEFAULT_COMPRESSLEVEL: int = 6

ENV_TOKEN_VAR: str = "SHELL_BUNDLER_TOKEN_VAR"
ENV_COMPRESSLEVEL: str = "SHELL_BUNDLER_COMPRESSLEVEL"

# Names the generated prologue assigns itself (globals and function locals);
# the credential variable must not shadow them.
RESERVED_SHELL_NAMES: frozenset[str] = frozenset(
    {
        "SHELL_BUNDLE_SELF",
        "SHELL_BUNDLE_PASSWORD_PROTECTED",
        "SHELL_BUNDLE_TOKEN_VAR",
        "SHELL_BUNDLE_MANIFEST",
        "SHELL_BUNDLE_COMMANDS",
        "BASH",
        "BASH_SOURCE",
        "HOME",
        "IFS",
        "PATH",
        "PWD",
        "SHELL",
        "child_status",
        "dir",
        "esc",
        "i",
        "member",
        "name",
        "path",
        "pct",
        "status",
        "statuses",
        "unzip_status",
    }
)


@dataclass(frozen=True, slots=True)
class BundleOptions:
    """Resolved build options.

    :ivar token_var: Environment variable the bundle reads its password from.
    :ivar compresslevel: Deflate compression level (0-9).
    """

    token_var: str = DEFAULT_TOKEN_VAR
    compresslevel: int = DEFAULT_COMPRESSLEVEL


_SHELL_IDENT_RE: re.Pattern[str] = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def resolve_bundle_options(
    *,
    token_var_override: str | None = None,
    compresslevel_override: int | None = None,
    environ: Mapping[str, str] | None = None,
) -> BundleOptions:
    """Resolve build options from explicit values, environment and defaults.

    :param token_var_override: Explicit credential variable name.
    :param compresslevel_override: Explicit compression level.
    :param environ: Environment mapping (defaults to ``os.environ``).
    :returns: Resolved options.
    :raises ConfigError: If a value is invalid.
    """

    if environ is None:
        environ = os.environ

    token_var: str = _resolve_token_var(token_var_override, environ)
    compresslevel: int = _resolve_compresslevel(compresslevel_override, environ)
    return BundleOptions(token_var=token_var, compresslevel=compresslevel)


def _resolve_token_var(override: str | None, environ: Mapping[str, str]) -> str:
    """Resolve the credential variable name.

    :param override: Optional explicit value.
    :param environ: Environment mapping.
    :returns: Shell variable name.
    :raises ConfigError: If the name is not a usable shell identifier.
    """

    value: str | None = override
    if value is None:
        env_value: str | None = environ.get(ENV_TOKEN_VAR)
        if env_value is not None and len(env_value) > 0:
            value = env_value
    if value is None:
        return DEFAULT_TOKEN_VAR

    return validate_token_var(value)


def validate_token_var(value: str) -> str:
    """Validate a credential variable name.

    :param value: Candidate name.
    :returns: The validated name.
    :raises ConfigError: If the name is invalid or reserved.
    """

    if _SHELL_IDENT_RE.match(value) is None:
        raise ConfigError(f"Invalid token variable {value!r}; expected a shell identifier.")
    if value in RESERVED_SHELL_NAMES or value.startswith(("BASH_", "__bundle_")):
        raise ConfigError(f"Token variable {value!r} is reserved.")
    return value


def _resolve_compresslevel(override: int | None, environ: Mapping[str, str]) -> int:
    """Resolve the zip compression level.

    :param override: Optional explicit value.
    :param environ: Environment mapping.
    :returns: Compression level in ``0..9``.
    :raises ConfigError: If the value is out of range or not an integer.
    """

    level: int
    if override is not None:
        level = override
    else:
        env_value: str | None = environ.get(ENV_COMPRESSLEVEL)
        if env_value is None or len(env_value.strip()) == 0:
            return DEFAULT_COMPRESSLEVEL
        try:
            level = int(env_value.strip())
        except ValueError as exc:
            raise ConfigError(
                f"Invalid {ENV_COMPRESSLEVEL}={env_value!r}; expected an integer 0-9."
            ) from exc

    if level < 0 or level > 9:
        raise ConfigError(f"Invalid compresslevel={level}; expected 0-9.")
    return level
