"""
Bitbucket repository manager

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

import json
from typing import Any, Dict, List

from .base import Repository, RepositoryManager, Target, embed_credentials
from .errors import ParseError


class BitbucketManager(RepositoryManager):
    """
    Bitbucket Cloud repository manager.

    Authenticates with the account name and an app password placed in the
    URL user-info, both for the listing request and for the clone URLs.
    Bitbucket already returns clone links of the form
    ``https://<user>@bitbucket.org/...``; only the password is spliced in.
    """

    platform = "bitbucket"
    credential_field = "password"
    default_api_url = "bitbucket.org"
    page_length = 100

    def listing_url(self, target: Target) -> str:
        host = (target.api_url or self.default_api_url).rstrip("/")
        if "://" in host:
            host = host.split("://", 1)[1]
        return (
            f"https://{target.entity}:{self.credential(target)}@{host}"
            f"/api/2.0/repositories/{target.entity}?page=1&pagelen={self.page_length}"
        )

    def parse_listing(self, raw: bytes, target: Target) -> List[Repository]:
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise ParseError(f"Failed to parse JSON: {e}") from e

        if not isinstance(data, dict):
            raise ParseError(
                f"Expected a paginated response object, got {type(data).__name__}"
            )
        values = data.get("values")
        if not isinstance(values, list):
            error = data.get("error")
            detail = error.get("message") if isinstance(error, dict) else None
            raise ParseError(
                'Response has no "values" list of repositories'
                + (f": {detail}" if detail else "")
            )

        unauthenticated_prefix = f"https://{target.entity}@"
        authenticated_prefix = f"https://{target.entity}:{self.credential(target)}@"

        repos = []
        for item in values:
            if not isinstance(item, dict):
                raise ParseError(
                    f"Expected a repository object, got {type(item).__name__}"
                )

            name = item.get("name")
            if not isinstance(name, str):
                raise ParseError(f'Repository entry has no "name": {item!r:.200}')

            clone_url = self._get_clone_url(name, item.get("links"))
            repos.append(
                Repository(
                    name=name,
                    clone_url=embed_credentials(
                        clone_url, unauthenticated_prefix, authenticated_prefix
                    ),
                )
            )

        self.logger.debug(
            f"Parsed {len(repos)} Bitbucket repositories for {target.entity}"
        )
        return repos

    def _get_clone_url(self, name: str, links: Any) -> str:
        if not isinstance(links, dict):
            raise ParseError(f'Repository "{name}" has no "links" object')

        clone_links = links.get("clone")
        if not isinstance(clone_links, list) or not all(
            isinstance(link, dict) for link in clone_links
        ):
            raise ParseError(f'Repository "{name}" has no "links.clone" list')

        for link in clone_links:
            if link.get("name") == "https":
                href = link.get("href")
                if isinstance(href, str) and href:
                    return href

        raise ParseError(
            f'Could not determine HTTPS cloning URL for "{name}": '
            f"{self._describe_links(clone_links)}"
        )

    @staticmethod
    def _describe_links(clone_links: List[Dict[str, Any]]) -> str:
        return ", ".join(str(link.get("name")) for link in clone_links) or "no links"
