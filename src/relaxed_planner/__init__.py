"""relaxed-planner: local-first persistence and calendar sync for the Relaxed Point Planner."""

import tomllib
from pathlib import Path

try:
    # Development checkouts read the version straight from pyproject.toml
    pyproject_path = Path(__file__).parent.parent.parent / "pyproject.toml"
    with open(pyproject_path, "rb") as f:
        data = tomllib.load(f)
    __version__ = data["project"]["version"]
except (OSError, KeyError, tomllib.TOMLDecodeError):
    # Installed (non-editable) package: use distribution metadata
    try:
        from importlib.metadata import PackageNotFoundError, version

        __version__ = version("relaxed-planner")
    except PackageNotFoundError:
        __version__ = "0.0.0-dev"
