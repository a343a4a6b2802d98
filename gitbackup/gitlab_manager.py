"""
GitLab repository manager

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


class GitLabManager(RepositoryManager):
    platform = "gitlab"
    credential_field = "token"
    default_api_url = "https://gitlab.com"
    per_page = 100

    def listing_url(self, target: Target) -> str:
        base_url = (target.api_url or self.default_api_url).rstrip("/")
        return (
            f"{base_url}/api/v4/{target.type}/{target.entity}/projects"
            f"?private_token={self.credential(target)}&per_page={self.per_page}"
        )

    def parse_listing(self, raw: bytes, target: Target) -> List[Repository]:
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise ParseError(f"Failed to parse JSON: {e}") from e

        if not isinstance(data, list):
            message = data.get("message") if isinstance(data, dict) else None
            raise ParseError(
                f"Expected a list of projects, got {type(data).__name__}"
                + (f": {message}" if message else "")
            )

        authenticated_prefix = f"https://oauth2:{self.credential(target)}@"
        repos = []
        for item in data:
            if not isinstance(item, dict):
                raise ParseError(f"Expected a project object, got {type(item).__name__}")

            # path is the URL slug, name may contain spaces
            name = item.get("path") or item.get("name")
            clone_url = item.get("http_url_to_repo")
            if not isinstance(name, str) or not isinstance(clone_url, str):
                raise ParseError(
                    f'Project entry lacks "path" or "http_url_to_repo": {item.get("id")}'
                )

            repos.append(
                Repository(
                    name=name,
                    clone_url=embed_credentials(
                        clone_url, "https://", authenticated_prefix
                    ),
                )
            )

        self.logger.debug(f"Parsed {len(repos)} GitLab projects for {target.entity}")
        return repos
