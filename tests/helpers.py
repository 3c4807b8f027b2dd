from __future__ import annotations

import shutil

import pytest


HAS_BASH = shutil.which("bash") is not None
HAS_UNZIP = shutil.which("unzip") is not None
HAS_ZIP = shutil.which("zip") is not None

requires_runtime = pytest.mark.skipif(
    not (HAS_BASH and HAS_UNZIP),
    reason="running bundles needs bash and unzip",
)
requires_bash = pytest.mark.skipif(not HAS_BASH, reason="needs bash")
requires_zip = pytest.mark.skipif(not HAS_ZIP, reason="password-protected archives need zip")


SPEAK_SH = """#!/bin/bash
if [[ $# -eq 0 ]]; then
    echo "Usage: $0 TEXT" >&2
    exit 1
fi
echo "$*"
"""

MOO_SH = """#!/bin/bash
if [[ $# -eq 0 ]]; then
    echo "Usage: $0 TEXT" >&2
    exit 1
fi
echo "Moo! Moo!"
"""
