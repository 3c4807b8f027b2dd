"""shell-bundler.

A small build utility that bundles several shell scripts into a single
executable: a bash prologue followed by a zip archive of the scripts, with
``<bundle> <command> [args...]`` dispatching to the matching script.
"""

__all__: list[str] = ["__version__"]

__version__: str = "0.1.0"
