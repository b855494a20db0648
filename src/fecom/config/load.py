from __future__ import annotations
from .schemas import Config
from pathlib import Path
import os
import re

try:
    import tomllib  # py311+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # py<=310

_ENV_TOKEN = re.compile(r"\$\{(\w+)\}|\$(\w+)")

def load_config(path: str | Path) -> Config:
    p = Path(path)
    data = tomllib.loads(p.read_text())
    return Config(**data)

def snapshot_config_toml(path: str | Path) -> str:
    """Return the raw TOML text for embedding in archive metadata."""
    return Path(path).read_text()

def resolve_path(token: str | Path) -> Path:
    """
    Expand ~ and ${VAR} / $VAR tokens in a path.

    Unlike os.path.expandvars, an unset variable is an error rather than
    being left verbatim in the result.
    """
    text = os.path.expanduser(str(token))

    def _sub(m: re.Match) -> str:
        name = m.group(1) or m.group(2)
        if name not in os.environ:
            raise ValueError(f"Environment variable '{name}' is not set (in path {token!r})")
        return os.environ[name]

    return Path(_ENV_TOKEN.sub(_sub, text))
