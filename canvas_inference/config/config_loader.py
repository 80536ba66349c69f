"""
Settings file and ``.env`` readers for the generation stack.

Settings files are YAML or JSON mappings. String values may reference the
process environment as ``${GEMINI_API_KEY}`` (anywhere in the string) or as a
bare ``$GEMINI_API_KEY``; unknown variables are kept verbatim so a missing key
shows up as an unconfigured provider rather than an empty string.
"""

import json
import os
import re
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional, TextIO, Tuple

import yaml

_BRACED_VAR = re.compile(r"\$\{([^}]+)\}")
_QUOTES = ("'", '"')


def _read_yaml(stream: TextIO) -> Any:
    return yaml.safe_load(stream) or {}


_PARSERS: Dict[str, Callable[[TextIO], Any]] = {
    ".yaml": _read_yaml,
    ".yml": _read_yaml,
    ".json": json.load,
}


def _expand(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _expand(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand(item) for item in value]
    if not isinstance(value, str):
        return value
    if "${" in value:
        return _BRACED_VAR.sub(lambda m: os.environ.get(m.group(1), m.group(0)), value)
    if len(value) > 1 and value[0] == "$":
        return os.environ.get(value[1:], value)
    return value


def _parse_env_line(line: str) -> Optional[Tuple[str, str]]:
    """Split one ``.env`` line into ``(key, value)``; None for blanks and comments."""
    line = line.strip()
    if line.startswith("export "):
        line = line[7:].lstrip()
    if not line or line[0] == "#":
        return None
    key, sep, value = line.partition("=")
    key, value = key.strip(), value.strip()
    if not (sep and key):
        return None
    if len(value) > 1 and value[0] in _QUOTES and value[-1] == value[0]:
        value = value[1:-1]
    return key, value


def _iter_env_pairs(path: Path) -> Iterator[Tuple[str, str]]:
    for line in path.read_text(encoding="utf-8").splitlines():
        pair = _parse_env_line(line)
        if pair is not None:
            yield pair


class ConfigLoader:
    """Namespace for the settings readers used by ``load_settings``."""

    @staticmethod
    def load(config_path: str, use_env: bool = True) -> Dict[str, Any]:
        """
        Parse a settings file into a dict.

        Raises:
            FileNotFoundError: the file does not exist.
            ValueError: unknown suffix, or the document is not a mapping.
        """
        path = Path(config_path)
        parser = _PARSERS.get(path.suffix.lower())
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        if parser is None:
            raise ValueError(f"Unsupported configuration file format: {path.suffix}")

        with path.open(encoding="utf-8") as stream:
            document = parser(stream)
        if not isinstance(document, dict):
            raise ValueError(f"Configuration root must be a mapping: {config_path}")
        return _expand(document) if use_env else document

    @staticmethod
    def get_section(config: Dict[str, Any], dotted_key: str, default: Any = None) -> Any:
        """Look up ``"providers.gemini.api_key"`` style keys in a nested dict."""
        node: Any = config
        for part in dotted_key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    @staticmethod
    def find_file_upwards(filename: str, start_path: Optional[str] = None) -> Optional[str]:
        """Absolute path of ``filename`` in the start dir or the nearest parent holding it."""
        origin = Path(start_path).expanduser() if start_path else Path.cwd()
        origin = origin.resolve()
        hits = (folder / filename for folder in (origin, *origin.parents))
        found = next((hit for hit in hits if hit.is_file()), None)
        return str(found) if found else None

    @staticmethod
    def load_env_file(env_path: Optional[str] = None, *, override: bool = False) -> Optional[str]:
        """
        Export ``KEY=value`` pairs from a ``.env`` file into ``os.environ``.

        Without ``env_path`` the nearest ``.env`` above the cwd is used.
        Variables already set in the process are kept unless ``override``.
        Returns the file that was read, or None when there was none.
        """
        located = env_path or ConfigLoader.find_file_upwards(".env")
        if not located or not Path(located).is_file():
            return None

        env_file = Path(located)
        for key, value in _iter_env_pairs(env_file):
            if override or key not in os.environ:
                os.environ[key] = value
        return str(env_file)
