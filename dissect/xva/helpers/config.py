from __future__ import annotations

import ast
import importlib.machinery
import importlib.util
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from types import ModuleType

log = logging.getLogger(__name__)

CONFIG_NAME = ".xvacfg.py"

# Settings that may be provided by a config file, with their expected type
KNOWN_SETTINGS = {
    "QEMU_IMG": str,
    "FORMAT": str,
    "WORK_DIR": str,
    "SPARSE": bool,
}


def load(paths: list[Path | str] | Path | str | None) -> ModuleType:
    """Attempt to load one configuration from the provided path(s)."""

    if isinstance(paths, (Path, str)):
        paths = [paths]

    config_spec = importlib.machinery.ModuleSpec("config", None)
    config = importlib.util.module_from_spec(config_spec)
    config_file = _find_config_file(paths)

    if config_file:
        log.debug("Using config file %s", config_file)
        config_values = _parse_ast(config_file.read_bytes())
        config.__dict__.update(config_values)

    return config


def settings(config: ModuleType) -> dict[str, Any]:
    """Return the known settings from a loaded config, skipping values of the wrong type."""
    result = {}

    for name, expected in KNOWN_SETTINGS.items():
        if not hasattr(config, name):
            continue

        value = getattr(config, name)
        if not isinstance(value, expected):
            log.warning("Ignoring config value %s=%r, expected %s", name, value, expected.__name__)
            continue

        result[name] = value

    return result


def _parse_ast(code: bytes) -> dict[str, str | int | bool]:
    # Only allow basic value assignments
    obj = {}

    module = ast.parse(code)
    if not isinstance(module, ast.Module):
        log.debug("Config did not parse to a module AST -- skipping")
        return obj

    for statement in module.body:
        if (
            not isinstance(statement, ast.Assign)
            or len(statement.targets) != 1
            or not isinstance(statement.value, ast.Constant)
        ):
            log.debug("Skipping non-constant assignment")
            continue

        target = statement.targets[0]
        if not isinstance(target, ast.Name) or not isinstance(target.ctx, ast.Store):
            log.debug("Skipping non-name assignment store")
            continue

        obj[target.id] = statement.value.value

    return obj


def _find_config_file(paths: list[Path | str] | None) -> Path | None:
    """Find a config file anywhere in the given path(s) and return it.

    Parts of the path are allowed to not exist and the last part may be a filename, e.g. the archive itself.
    The root directory ('/') is never searched.
    """

    if not paths:
        return None

    config_file = None

    for path in paths:
        if not path:
            continue

        cur_path = Path(path).absolute()

        while not config_file and cur_path.name != "":
            cur_config = cur_path.joinpath(CONFIG_NAME)
            if cur_config.is_file():
                config_file = cur_config
            cur_path = cur_path.parent

        if config_file:
            break

    return config_file
