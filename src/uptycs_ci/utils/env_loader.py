"""Merge a local .env file beneath the process environment."""

from pathlib import Path
from typing import Dict, Mapping, Optional

from dotenv import dotenv_values


def load_env(environ: Mapping[str, str], directory: Optional[Path] = None) -> Dict[str, str]:
    """
    Return ``environ`` layered over the values of ``.env`` if present.

    Real environment variables always win over the file.
    """
    env_file = (directory or Path.cwd()) / ".env"
    merged: Dict[str, str] = {}

    if env_file.exists():
        merged.update({k: v for k, v in dotenv_values(env_file).items() if v is not None})

    merged.update(environ)
    return merged
