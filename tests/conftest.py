from __future__ import annotations

import os
from pathlib import Path
from typing import Callable

import pytest


@pytest.fixture()
def write_script(tmp_path: Path) -> Callable[..., Path]:
    def _write(name: str, content: str, *, subdir: str = "src") -> Path:
        path = tmp_path / subdir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        path.chmod(0o755)
        return path

    return _write


@pytest.fixture()
def clean_env() -> dict[str, str]:
    env = dict(os.environ)
    for name in ("TOKEN", "BUNDLE_PW", "SHELL_BUNDLE_SELF", "SHELL_BUNDLER_TOKEN_VAR", "SHELL_BUNDLER_COMPRESSLEVEL"):
        env.pop(name, None)
    return env
