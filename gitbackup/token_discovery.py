"""
Auto-discovery of target credentials from standard locations

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
"""

import dataclasses
import logging
import netrc
import os
import subprocess
from pathlib import Path
from typing import Iterable, Optional
from urllib.parse import urlparse

import yaml

from .base import Target

logger = logging.getLogger(__name__)

# Checked in order, first non-empty value wins
ENV_VARS = {
    "github": ("GITHUB_TOKEN", "GH_TOKEN"),
    "gitlab": ("GITLAB_TOKEN",),
    "bitbucket": ("BITBUCKET_APP_PASSWORD", "BITBUCKET_PASSWORD"),
}

DEFAULT_HOSTS = {
    "github": "github.com",
    "gitlab": "gitlab.com",
    "bitbucket": "bitbucket.org",
}


def target_hostname(target: Target) -> str:
    """Web host a target's credential is issued for"""
    if target.api_url:
        url = target.api_url if "://" in target.api_url else f"https://{target.api_url}"
        host = urlparse(url).hostname
        if host:
            # api.github.com and api.bitbucket.org share credentials with the site
            return host[len("api."):] if host.startswith("api.") else host
    return DEFAULT_HOSTS.get(target.source, "")


def _from_env(source: str) -> Optional[str]:
    for var in ENV_VARS[source]:
        value = os.getenv(var)
        if value:
            logger.debug(f"[TOKEN] {source} credential found in {var} env var")
            return value
    return None


def _from_gh_cli(hostname: str) -> Optional[str]:
    try:
        result = subprocess.run(
            ["gh", "auth", "token", "--hostname", hostname],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (subprocess.TimeoutExpired, OSError):
        return None

    token = result.stdout.strip()
    if result.returncode == 0 and token:
        logger.info(f"[TOKEN] GitHub token for {hostname} discovered from gh CLI")
        return token
    return None


def _glab_config_paths() -> Iterable[Path]:
    config_home = Path(os.getenv("XDG_CONFIG_HOME") or Path.home() / ".config")
    paths = [config_home / "glab-cli" / "config.yml"]
    default = Path.home() / ".config" / "glab-cli" / "config.yml"
    if default not in paths:
        paths.append(default)
    return paths


def _from_glab_config(hostname: str) -> Optional[str]:
    for config_path in _glab_config_paths():
        if not config_path.exists():
            continue
        try:
            with open(config_path) as f:
                config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.debug(f"[TOKEN] Failed to read glab config {config_path}: {e}")
            continue

        hosts = config.get("hosts") if isinstance(config, dict) else None
        host_config = hosts.get(hostname) if isinstance(hosts, dict) else None
        token = host_config.get("token") if isinstance(host_config, dict) else None
        if token:
            logger.info(f"[TOKEN] GitLab token for {hostname} discovered from {config_path}")
            return str(token)
    return None


def _from_netrc(hostnames: Iterable[str], login: Optional[str]) -> Optional[str]:
    netrc_path = Path.home() / ".netrc"
    if not netrc_path.exists():
        return None
    try:
        auth = netrc.netrc(str(netrc_path))
    except (OSError, netrc.NetrcParseError) as e:
        logger.debug(f"[TOKEN] Failed to read .netrc: {e}")
        return None

    for host in hostnames:
        creds = auth.authenticators(host)
        if not creds:
            continue
        netrc_login, _, password = creds
        if login and netrc_login != login:
            continue
        logger.info(f"[TOKEN] Credentials for {host} discovered from .netrc")
        return password
    return None


def get_github_token(target: Target) -> Optional[str]:
    """
    Discover a GitHub token for a target.

    Priority:
    1. GITHUB_TOKEN environment variable
    2. GH_TOKEN environment variable
    3. gh CLI auth token for the target's host (`gh auth token --hostname`)
    """
    return _from_env("github") or _from_gh_cli(target_hostname(target))


def get_gitlab_token(target: Target) -> Optional[str]:
    """
    Discover a GitLab token for a target.

    Priority:
    1. GITLAB_TOKEN environment variable
    2. glab CLI config entry for the target's host
    """
    return _from_env("gitlab") or _from_glab_config(target_hostname(target))


def get_bitbucket_password(target: Target) -> Optional[str]:
    """
    Discover a Bitbucket app password for a target.

    Priority:
    1. BITBUCKET_APP_PASSWORD environment variable
    2. BITBUCKET_PASSWORD environment variable
    3. ~/.netrc entry for the target's host whose login is the target entity
    """
    host = target_hostname(target)
    return _from_env("bitbucket") or _from_netrc([host, f"api.{host}"], target.entity)


DISCOVERERS = {
    "github": ("token", get_github_token),
    "gitlab": ("token", get_gitlab_token),
    "bitbucket": ("password", get_bitbucket_password),
}


def resolve_credentials(target: Target) -> Target:
    """
    Fill in a target's missing credential from standard locations.

    Credentials given explicitly in the configuration always win. Targets of
    unknown sources are returned unchanged and fail later at dispatch.
    """
    try:
        field_name, discover = DISCOVERERS[target.source]
    except KeyError:
        return target
    if getattr(target, field_name):
        return target
    return dataclasses.replace(target, **{field_name: discover(target)})
