"""
GitHub repository manager

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
from typing import List

from .base import Repository, RepositoryManager, Target, embed_credentials
from .errors import ParseError


class GitHubManager(RepositoryManager):
    platform = "github"
    credential_field = "token"
    default_api_url = "https://api.github.com"
    per_page = 200

    def listing_url(self, target: Target) -> str:
        base_url = (target.api_url or self.default_api_url).rstrip("/")
        return (
            f"{base_url}/{target.type}/{target.entity}/repos"
            f"?access_token={self.credential(target)}&per_page={self.per_page}"
        )

    def parse_listing(self, raw: bytes, target: Target) -> List[Repository]:
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise ParseError(f"Failed to parse JSON: {e}") from e

        if not isinstance(data, list):
            # Error payloads ("Bad credentials", "Not Found") are objects
            message = data.get("message") if isinstance(data, dict) else None
            raise ParseError(
                f"Expected a list of repositories, got {type(data).__name__}"
                + (f": {message}" if message else "")
            )

        authenticated_prefix = f"https://{target.entity}:{self.credential(target)}@"
        repos = []
        for item in data:
            if not isinstance(item, dict):
                raise ParseError(
                    f"Expected a repository object, got {type(item).__name__}"
                )

            name = item.get("name")
            clone_url = item.get("clone_url")
            name = name if isinstance(name, str) else ""
            clone_url = clone_url if isinstance(clone_url, str) else ""

            repos.append(
                Repository(
                    name=name,
                    clone_url=embed_credentials(
                        clone_url, "https://", authenticated_prefix
                    ),
                )
            )

        self.logger.debug(f"Parsed {len(repos)} GitHub repositories for {target.entity}")
        return repos
