"""
Environment handling for configuration files.

A ``.env`` file next to the configuration is loaded with python-dotenv,
then ``${VAR}`` references in the parsed YAML are replaced from the
process environment. Provider credentials can therefore stay out of
the configuration file itself.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

# ${VAR}, ${VAR:-default}, ${VAR:?error}
_BRACED_PATTERN = re.compile(r"\$\{([^}:]+)(?::([?-])([^}]*))?\}")
_BARE_PATTERN = re.compile(r"\$([A-Z_][A-Z0-9_]*)")


class EnvManager:
    """
    Loads ``.env`` files and expands variable references.

    Example:
        >>> env = EnvManager("/etc/assetmigrator")
        >>> env.load()
        >>> env.substitute_dict({"bucket": "${DO_S3_BUCKET}"})
    """

    def __init__(self, project_root: Path | str | None = None):
        self.project_root = Path(project_root) if project_root else Path.cwd()

    def load(self, env_file: str | Path | None = None, override: bool = False) -> bool:
        """
        Load a ``.env`` file into the process environment.

        Args:
            env_file: File to load (defaults to ``.env`` under project_root)
            override: Replace variables that are already set

        Returns:
            False when the file does not exist
        """
        path = self.project_root / ".env" if env_file is None else Path(env_file)
        if not path.exists():
            return False
        return load_dotenv(path, override=override)

    def get(self, key: str, default: str | None = None) -> str | None:
        return os.environ.get(key, default)

    def substitute(self, text: str) -> str:
        """
        Expand ``${VAR}``, ``${VAR:-default}``, ``${VAR:?message}`` and ``$VAR``.

        Unset plain references are left as written.

        Raises:
            ValueError: A ``${VAR:?...}`` reference is unset
        """

        def replace(match: re.Match) -> str:
            name, operator, operand = match.groups()
            value = os.environ.get(name)
            if value is not None:
                return value
            if operator == "-":
                return operand
            if operator == "?":
                msg = operand or f"Required variable not set: {name}"
                raise ValueError(msg)
            return match.group(0)

        text = _BRACED_PATTERN.sub(replace, text)
        return _BARE_PATTERN.sub(lambda m: os.environ.get(m.group(1), m.group(0)), text)

    def substitute_value(self, value: Any) -> Any:
        if isinstance(value, str):
            return self.substitute(value)
        if isinstance(value, dict):
            return self.substitute_dict(value)
        if isinstance(value, list):
            return [self.substitute_value(item) for item in value]
        return value

    def substitute_dict(self, data: dict[str, Any]) -> dict[str, Any]:
        """Expand references in every string nested under data."""
        return {key: self.substitute_value(value) for key, value in data.items()}


_global_env: EnvManager | None = None


def get_env() -> EnvManager:
    """Process-wide EnvManager used by MigrationConfig.from_file."""
    global _global_env
    if _global_env is None:
        _global_env = EnvManager()
    return _global_env
