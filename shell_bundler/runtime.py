"""Bundle prologue (runtime dispatcher).

The prologue is the bash text placed in front of the zip archive. At run time
it:

- resolves its own absolute path (following symlinks) and exports it as
  ``SHELL_BUNDLE_SELF``,
- checks that ``unzip`` is installed,
- obtains the password from the environment or an interactive prompt when the
  bundle was built with one,
- extracts and ``eval``s the manifest member, whose dispatch logic calls
  ``execute_bundled_script`` for the selected command.

``execute_bundled_script`` streams a member from ``unzip -p`` straight into
``bash -s`` with ``argv[0]`` rewritten to the script's basename. Nothing is
written to disk. The function is exported so bundled scripts can call it to
run sibling scripts.

The template ends with an explicit ``exit`` so bash never reads the archive
bytes that follow.
"""

import textwrap

from shell_bundler.config import DEFAULT_TOKEN_VAR, validate_token_var
from shell_bundler.manifest import MANIFEST_MEMBER


class RuntimeTemplateError(RuntimeError):
    """Raised when the prologue template cannot be rendered."""


# unzip exit statuses the prologue distinguishes.
UNZIP_WARNING: int = 1
UNZIP_NO_PASSWORD: int = 5
UNZIP_NOT_FOUND: int = 11
UNZIP_BAD_PASSWORD: int = 82


_PROLOGUE_TEMPLATE: str = textwrap.dedent(
    r'''
    #!/usr/bin/env bash
    # This file was generated by shell-bundler.
    #
    # Everything after the final `exit` below is a zip archive holding the
    # command manifest and the bundled scripts. Do not edit this file.

    SHELL_BUNDLE_PASSWORD_PROTECTED=__SB_PASSWORD_PROTECTED__
    SHELL_BUNDLE_TOKEN_VAR=__SB_TOKEN_VAR__
    SHELL_BUNDLE_MANIFEST=__SB_MANIFEST__

    __bundle_die() {
        echo "$*" >&2
        exit 1
    }

    __bundle_resolve_self() {
        local path="$1" dir
        while [[ -L "$path" ]]; do
            dir="$(cd -P "$(dirname "$path")" && pwd)" || return 1
            path="$(readlink "$path")" || return 1
            if [[ "$path" != /* ]]; then
                path="$dir/$path"
            fi
        done
        dir="$(cd -P "$(dirname "$path")" && pwd)" || return 1
        printf '%s/%s\n' "$dir" "$(basename "$path")"
    }

    __bundle_unzip() {
        local member="$1" status
        if [[ "$SHELL_BUNDLE_PASSWORD_PROTECTED" == true ]]; then
            unzip -qq -P "${!SHELL_BUNDLE_TOKEN_VAR}" -p "$SHELL_BUNDLE_SELF" "$member" 2>/dev/null
        else
            unzip -qq -p "$SHELL_BUNDLE_SELF" "$member" 2>/dev/null
        fi
        status=$?
        # 1 only warns about the prologue bytes in front of the archive.
        if [[ $status -eq __SB_UNZIP_WARNING__ ]]; then
            status=0
        fi
        return $status
    }

    __bundle_extract_error() {
        case "$2" in
            __SB_UNZIP_BAD_PASSWORD__)
                echo "Error: invalid password." >&2
                ;;
            __SB_UNZIP_NO_PASSWORD__)
                echo "Error: Password required but not provided." >&2
                ;;
            __SB_UNZIP_NOT_FOUND__)
                echo "Error: '$1' not found in bundle." >&2
                ;;
            *)
                echo "Error: bundle archive is corrupt or unreadable (unzip exit $2)." >&2
                ;;
        esac
    }

    execute_bundled_script() {
        local member="$1" unzip_status child_status
        local -a statuses
        shift
        __bundle_unzip "$member" | exec -a "${member##*/}" bash -s -- "$@"
        statuses=("${PIPESTATUS[@]}")
        unzip_status=${statuses[0]}
        child_status=${statuses[1]}
        # 141: the script exited before reading all of its own text (SIGPIPE).
        if [[ $unzip_status -ne 0 && $unzip_status -ne 141 ]]; then
            __bundle_extract_error "$member" "$unzip_status"
            return 1
        fi
        return $child_status
    }

    SHELL_BUNDLE_SELF="$(__bundle_resolve_self "${BASH_SOURCE[0]}")" \
        || __bundle_die "Error: unable to locate the bundle file."

    if ! command -v unzip &> /dev/null; then
        __bundle_die "Error: 'unzip' command not found. Please make sure it is installed and in your PATH."
    fi

    if [[ "$SHELL_BUNDLE_PASSWORD_PROTECTED" == true ]]; then
        if [[ -z "${!SHELL_BUNDLE_TOKEN_VAR}" ]]; then
            printf 'Password: ' >&2
            read -r -s "$SHELL_BUNDLE_TOKEN_VAR"
            echo >&2
        fi
        if [[ -z "${!SHELL_BUNDLE_TOKEN_VAR}" ]]; then
            __bundle_die "Error: Password required but not provided."
        fi
        export "$SHELL_BUNDLE_TOKEN_VAR"
    fi

    export SHELL_BUNDLE_SELF SHELL_BUNDLE_PASSWORD_PROTECTED SHELL_BUNDLE_TOKEN_VAR
    export -f __bundle_unzip __bundle_extract_error execute_bundled_script

    __bundle_manifest_source="$(__bundle_unzip "$SHELL_BUNDLE_MANIFEST")"
    __bundle_status=$?
    if [[ $__bundle_status -ne 0 ]]; then
        __bundle_extract_error "$SHELL_BUNDLE_MANIFEST" "$__bundle_status"
        exit 1
    fi
    eval "$__bundle_manifest_source"
    unset __bundle_manifest_source __bundle_status

    __bundle_dispatch "$@"
    exit $?
    '''
).lstrip()


def render_prologue(*, password_protected: bool, token_var: str = DEFAULT_TOKEN_VAR) -> str:
    """Render the bash prologue for one bundle.

    :param password_protected: Whether the archive members are encrypted.
    :param token_var: Environment variable the bundle reads its password from.
    :returns: Prologue text, ending with a newline.
    :raises RuntimeTemplateError: If a placeholder is left unfilled.
    """

    token_var = validate_token_var(token_var)

    runtime: str = _PROLOGUE_TEMPLATE
    runtime = runtime.replace("__SB_PASSWORD_PROTECTED__", "true" if password_protected is True else "false")
    runtime = runtime.replace("__SB_TOKEN_VAR__", token_var)
    runtime = runtime.replace("__SB_MANIFEST__", MANIFEST_MEMBER)
    runtime = runtime.replace("__SB_UNZIP_WARNING__", str(UNZIP_WARNING))
    runtime = runtime.replace("__SB_UNZIP_BAD_PASSWORD__", str(UNZIP_BAD_PASSWORD))
    runtime = runtime.replace("__SB_UNZIP_NO_PASSWORD__", str(UNZIP_NO_PASSWORD))
    runtime = runtime.replace("__SB_UNZIP_NOT_FOUND__", str(UNZIP_NOT_FOUND))

    if "__SB_" in runtime:
        raise RuntimeTemplateError("Internal error: prologue template has unfilled placeholders.")
    return runtime
