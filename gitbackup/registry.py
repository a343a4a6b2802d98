"""
Source provider registry

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

from typing import Dict, List, Type

from .base import Repository, RepositoryManager, Target
from .bitbucket_manager import BitbucketManager
from .errors import UnrecognizedSourceError
from .github_manager import GitHubManager
from .gitlab_manager import GitLabManager

# Adding a provider means adding a manager class and an entry here
PROVIDERS: Dict[str, Type[RepositoryManager]] = {
    "github": GitHubManager,
    "bitbucket": BitbucketManager,
    "gitlab": GitLabManager,
}


def supported_sources() -> List[str]:
    return sorted(PROVIDERS)


def get_manager(source: str) -> RepositoryManager:
    try:
        manager_class = PROVIDERS[source]
    except (KeyError, TypeError):
        raise UnrecognizedSourceError(source) from None
    return manager_class()


def list_repositories(target: Target) -> List[Repository]:
    """Retrieve the repositories of a target from its source provider"""
    return get_manager(target.source).get_repositories(target)
