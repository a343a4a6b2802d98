"""
Base classes for repository management

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

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import unquote, urlsplit

import requests

from .errors import TransportError

REDACTED = "***"

_USERINFO_SECRET = re.compile(r"(?P<prefix>[a-zA-Z][a-zA-Z0-9+.-]*://[^/@:\s]*:)[^/@\s]+@")
_QUERY_SECRET = re.compile(r"(?P<prefix>(?:access_token|private_token)=)[^&\s]+")


@dataclass
class Target:
    """An account or organisation whose repositories are backed up as a unit"""

    name: str
    source: str
    entity: str
    type: str = "users"
    token: Optional[str] = field(default=None, repr=False)
    password: Optional[str] = field(default=None, repr=False)
    api_url: Optional[str] = None


@dataclass
class Repository:
    name: str
    clone_url: str = field(repr=False)


def embed_credentials(url: str, prefix: str, replacement: str) -> str:
    """Replace the first occurrence of ``prefix`` in ``url``.

    A URL that does not contain the prefix is returned unchanged.
    """
    return url.replace(prefix, replacement, 1)


def is_safe_path_segment(name: Optional[str]) -> bool:
    if not name or name in (".", ".."):
        return False
    return not any(char in name for char in ("/", "\\", "\x00"))


def url_password(url: str) -> Optional[str]:
    try:
        password = urlsplit(url).password
    except ValueError:
        return None
    return unquote(password) if password else None


def redact_credentials(text: Optional[str], *secrets: Optional[str]) -> str:
    """
    Mask credentials in text that is about to be logged or stored.

    Args:
        text: Arbitrary text, typically a URL or captured git output
        secrets: Literal secret values that must not appear in the result

    Returns:
        The text with URL passwords, token query parameters and every
        given secret replaced by ``***``
    """
    if not text:
        return ""
    redacted = _USERINFO_SECRET.sub(rf"\g<prefix>{REDACTED}@", text)
    redacted = _QUERY_SECRET.sub(rf"\g<prefix>{REDACTED}", redacted)
    for secret in secrets:
        if secret:
            redacted = redacted.replace(secret, REDACTED)
    return redacted


class RepositoryManager(ABC):
    """
    Lists the repositories of a target on one source provider.

    Subclasses describe where the listing lives (``listing_url``) and how
    its payload maps to ``Repository`` objects (``parse_listing``). The
    request itself is shared: one GET, no retry, no status check.
    """

    platform = ""
    credential_field = "token"

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    def credential(self, target: Target) -> str:
        return getattr(target, self.credential_field, None) or ""

    @abstractmethod
    def listing_url(self, target: Target) -> str:
        pass

    @abstractmethod
    def parse_listing(self, raw: bytes, target: Target) -> List[Repository]:
        pass

    def fetch_listing_page(self, target: Target) -> bytes:
        url = self.listing_url(target)
        safe_url = redact_credentials(url, self.credential(target))
        self.logger.debug(f"[LIST] Requesting {safe_url}")

        try:
            response = requests.get(url)
            contents = response.content
        except requests.RequestException as e:
            message = redact_credentials(str(e), self.credential(target))
            raise TransportError(
                f"Failed to retrieve the list of repositories from {self.platform}: {message}"
            ) from e

        if response.status_code >= 400:
            self.logger.warning(
                f"[LIST] {self.platform} answered HTTP {response.status_code} for {safe_url}"
            )
        else:
            self.logger.debug(f"[LIST] HTTP {response.status_code}, {len(contents)} bytes")
        return contents

    def get_repositories(self, target: Target) -> List[Repository]:
        return self.parse_listing(self.fetch_listing_page(target), target)
