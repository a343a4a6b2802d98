"""
Backup configuration loading

Copyright 2025 HyperSec

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

    http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.

Example configuration::

    backup_directory: /backups
    targets:
      - name: acme
        source: github
        type: orgs
        entity: acme-co
        token: ghp_xxx
      - name: personal
        source: bitbucket
        entity: bbuser
        password: app-password
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .base import Target
from .errors import ConfigurationError
from .token_discovery import resolve_credentials

logger = logging.getLogger(__name__)

REQUIRED_KEYS = ("name", "source", "entity")


@dataclass
class BackupConfig:
    backup_directory: Optional[str] = None
    targets: List[Target] = field(default_factory=list)


def target_from_mapping(entry: Dict[str, Any]) -> Target:
    """Build a Target from one configuration entry"""
    if not isinstance(entry, dict):
        raise ConfigurationError(f"Target entry must be a mapping, got {entry!r:.100}")

    missing = [key for key in REQUIRED_KEYS if not entry.get(key)]
    if missing:
        raise ConfigurationError(
            f"Target {entry.get('name', '<unnamed>')!r} is missing: {', '.join(missing)}"
        )

    def optional(key: str) -> Optional[str]:
        value = entry.get(key)
        return str(value) if value is not None else None

    return Target(
        name=str(entry["name"]),
        source=str(entry["source"]).lower(),
        entity=str(entry["entity"]),
        type=str(entry.get("type") or "users"),
        token=optional("token"),
        password=optional("password"),
        api_url=optional("url"),
    )


def load_config(config_path: str, discover_tokens: bool = True) -> BackupConfig:
    """
    Load backup targets from a YAML file.

    Args:
        config_path: Path to the YAML configuration
        discover_tokens: Fill missing credentials from the environment and CLI tools

    Returns:
        BackupConfig with the backup directory (if configured) and targets
    """
    path = Path(config_path)
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"Configuration file not found: {path}") from None
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Could not read configuration {path}: {e}") from e

    if data is None:
        data = {}
    if isinstance(data, list):
        data = {"targets": data}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration {path} must be a mapping or a list")

    entries = data.get("targets") or []
    if not isinstance(entries, list):
        raise ConfigurationError('"targets" must be a list')

    targets = []
    for entry in entries:
        target = target_from_mapping(entry)
        if discover_tokens:
            target = resolve_credentials(target)
        if not (target.token or target.password):
            logger.warning(f"[CONFIG] No credential configured for target {target.name}")
        targets.append(target)

    backup_directory = data.get("backup_directory")
    logger.debug(f"[CONFIG] Loaded {len(targets)} targets from {path}")
    return BackupConfig(
        backup_directory=str(backup_directory) if backup_directory else None,
        targets=targets,
    )
