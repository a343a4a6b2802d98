"""
gitbackup - git repository mirroring tool

Mirrors every git repository owned by GitHub, GitLab and Bitbucket accounts
into a local directory tree and keeps the mirrors up to date.

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

__version__ = "1.0.0"
__author__ = "Derek"
__license__ = "Apache-2.0"
__description__ = "Mirror every git repository of source provider accounts into local bare repositories"

from .base import Repository, RepositoryManager, Target
from .bitbucket_manager import BitbucketManager
from .errors import (
    BackupError,
    ConfigurationError,
    ParseError,
    SyncError,
    TransportError,
    UnrecognizedSourceError,
)
from .github_manager import GitHubManager
from .gitlab_manager import GitLabManager
from .local_backup import LocalBackup, SyncOutcome, SyncResult, sync_repository
from .main import BackupOrchestrator, main
from .registry import PROVIDERS, get_manager, list_repositories

__all__ = [
    "Target",
    "Repository",
    "RepositoryManager",
    "GitHubManager",
    "GitLabManager",
    "BitbucketManager",
    "PROVIDERS",
    "get_manager",
    "list_repositories",
    "LocalBackup",
    "SyncOutcome",
    "SyncResult",
    "sync_repository",
    "BackupOrchestrator",
    "BackupError",
    "ConfigurationError",
    "UnrecognizedSourceError",
    "TransportError",
    "ParseError",
    "SyncError",
    "main",
]
