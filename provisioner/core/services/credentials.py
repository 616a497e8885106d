"""
Credentials — admin password and web secret key for the platform.

Nothing is hard-coded. Each value resolves in precedence order:
    environment variable  >  saved credentials file  >  freshly generated

Generated values are saved (mode 0600) in the state directory so the
next run renders the identical config and stays converged. Values
supplied through the environment are never written to disk.
"""

from __future__ import annotations

import json
import logging
import os
import secrets
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, SecretStr

logger = logging.getLogger(__name__)

CREDENTIALS_FILE = "credentials.json"

ENV_ADMIN_PASSWORD = "PROVISIONER_ADMIN_PASSWORD"
ENV_SECRET_KEY = "PROVISIONER_SECRET_KEY"

_FIELDS = {
    "admin_password": (ENV_ADMIN_PASSWORD, lambda: secrets.token_urlsafe(18)),
    "secret_key": (ENV_SECRET_KEY, lambda: secrets.token_urlsafe(32)),
}


class Credentials(BaseModel):
    admin_password: SecretStr
    secret_key: SecretStr
    path: str = ""
    generated: list[str] = []


def credentials_path(state_dir: Path) -> Path:
    return state_dir / CREDENTIALS_FILE


def _read(path: Path) -> dict[str, str]:
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable credentials file %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        return {}
    return {k: v for k, v in data.items() if isinstance(v, str) and v}


def _write(path: Path, data: dict[str, str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
        f.write("\n")
    os.chmod(path, 0o600)


def load_credentials(
    state_dir: Path,
    environ: Mapping[str, str] | None = None,
    persist: bool = True,
) -> Credentials:
    """Resolve credentials, generating and saving any that are missing.

    Args:
        state_dir: Directory holding the credentials file.
        environ: Environment to read overrides from (default: os.environ).
        persist: Save newly generated values. Off for dry-runs.
    """
    environ = os.environ if environ is None else environ
    path = credentials_path(state_dir)
    stored = _read(path)

    values: dict[str, str] = {}
    generated: list[str] = []
    for field_name, (env_var, make) in _FIELDS.items():
        if environ.get(env_var):
            values[field_name] = environ[env_var]
        elif field_name in stored:
            values[field_name] = stored[field_name]
        else:
            values[field_name] = make()
            stored[field_name] = values[field_name]
            generated.append(field_name)

    if generated and persist:
        _write(path, stored)
        logger.info("Generated %s; saved to %s", ", ".join(generated), path)

    return Credentials(
        admin_password=SecretStr(values["admin_password"]),
        secret_key=SecretStr(values["secret_key"]),
        path=str(path),
        generated=generated,
    )
