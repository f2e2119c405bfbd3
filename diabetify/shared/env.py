"""Resolve Docker-style ``<NAME>_FILE`` secrets into plain env variables."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, MutableMapping, Optional

import structlog

logger = structlog.get_logger(__name__)

SECRET_FILE_SUFFIX = "_FILE"


def load_secret_file_variables(
    environ: Optional[MutableMapping[str, str]] = None,
) -> Dict[str, str]:
    """
    Expose the content of every ``KEY_FILE`` as ``KEY``.

    Values already present in the environment win over the file. Unreadable
    files are logged and skipped so that the settings layer can report the
    missing value itself (for example an absent ``JWT_SECRET_KEY``).

    Returns:
        Mapping of the keys that were populated from files.
    """
    env = os.environ if environ is None else environ
    loaded: Dict[str, str] = {}

    for key, file_path in list(env.items()):
        if not key.endswith(SECRET_FILE_SUFFIX) or not file_path:
            continue
        target_key = key[: -len(SECRET_FILE_SUFFIX)]
        if env.get(target_key):
            continue
        try:
            value = Path(file_path).read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning(
                "env.secret_file.unreadable", key=key, path=file_path, error=str(exc)
            )
            continue
        env[target_key] = value
        loaded[target_key] = file_path

    return loaded
