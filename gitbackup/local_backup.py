"""
Local mirror synchronisation

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
import os
import shutil
import subprocess
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from .base import Repository, is_safe_path_segment, redact_credentials, url_password
from .errors import SyncError

# Refspec that makes a fetch from a bare URL update every ref of the mirror
MIRROR_REFSPEC = "+refs/*:refs/*"


def robust_rmtree(path: Path, logger: logging.Logger, max_retries: int = 3) -> bool:
    """
    Robustly remove a directory tree with retries.
    Handles race conditions where files may still be written during removal.

    Args:
        path: Path to remove
        logger: Logger for messages
        max_retries: Maximum number of retry attempts

    Returns:
        True if successfully removed, False otherwise
    """
    if not path.exists():
        return True

    for attempt in range(max_retries):
        try:
            shutil.rmtree(path)
            return True
        except OSError as e:
            if attempt < max_retries - 1:
                time.sleep(0.5 * (attempt + 1))
                logger.debug(
                    f"[CLEANUP] Retry {attempt + 1}/{max_retries} removing {path}: {e}"
                )
            else:
                logger.warning(
                    f"[CLEANUP] Failed to remove {path} after {max_retries} attempts: {e}"
                )
                return False
    return False


class SyncOutcome(Enum):
    CLONED = "cloned"
    UPDATED = "updated"
    CLONE_FAILED = "clone_failed"
    FETCH_FAILED = "fetch_failed"
    REJECTED = "rejected"


@dataclass
class SyncResult:
    repository: Repository
    path: Optional[Path]
    outcome: SyncOutcome
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome in (SyncOutcome.CLONED, SyncOutcome.UPDATED)


class LocalBackup:
    def __init__(self, backup_path: str, git_executable: str = "git"):
        """
        Initialize local mirror manager
        Args:
            backup_path: Root directory holding one directory per target
            git_executable: git binary used for clone and fetch
        """
        self.backup_path = Path(backup_path)
        self.git_executable = git_executable
        self.logger = logging.getLogger(self.__class__.__name__)

        try:
            self.backup_path.mkdir(parents=True, exist_ok=True)
            self.logger.info(f"[CONFIG] Local backup directory: {self.backup_path}")
        except OSError as e:
            self.logger.error(
                f"[ERROR] Failed to create backup directory {self.backup_path}: {e}"
            )
            raise

    def mirror_path(self, target_name: str, repo: Repository) -> Path:
        """Local mirror location of a repository, rejecting unsafe names"""
        for segment in (target_name, repo.name):
            if not is_safe_path_segment(segment):
                raise SyncError(f"Refusing to use {segment!r} as a directory name")
        return self.backup_path / target_name / repo.name

    def sync(self, target_name: str, repo: Repository) -> SyncResult:
        """
        Clone a repository the first time it is seen, fetch it afterwards.

        The presence of the mirror directory is the only state consulted.
        Failures are reported in the returned SyncResult, never raised.
        """
        try:
            repo_path = self.mirror_path(target_name, repo)
        except SyncError as e:
            self.logger.error(f"[ERROR] Skipping repository {repo.name!r}: {e}")
            return SyncResult(repo, None, SyncOutcome.REJECTED, str(e))

        if repo_path.exists():
            return self._fetch(repo, repo_path)
        return self._clone(repo, repo_path)

    def _clone(self, repo: Repository, repo_path: Path) -> SyncResult:
        self.logger.info(f"[CLONE] Cloning {repo.name} to {repo_path}")
        try:
            repo_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.logger.error(f"[ERROR] Cannot create {repo_path.parent}: {e}")
            return SyncResult(repo, repo_path, SyncOutcome.CLONE_FAILED, str(e))

        returncode, output = self._run_git(
            ["clone", "--mirror", repo.clone_url, str(repo_path)], repo
        )
        if returncode != 0:
            self.logger.error(f"[ERROR] Clone failed for {repo.name}: {output[:500]}")
            # Leaving a half-written directory would turn the next run into a fetch
            if repo_path.exists() and robust_rmtree(repo_path, self.logger):
                self.logger.debug(f"[CLEANUP] Removed incomplete mirror {repo_path}")
            return SyncResult(repo, repo_path, SyncOutcome.CLONE_FAILED, output)

        self.logger.info(f"[SUCCESS] Cloned {repo.name}")
        return SyncResult(repo, repo_path, SyncOutcome.CLONED, output)

    def _fetch(self, repo: Repository, repo_path: Path) -> SyncResult:
        self.logger.info(f"[FETCH] Updating mirror in {repo_path}")

        # The URL is passed again because credentials may have rotated
        returncode, output = self._run_git(
            ["fetch", "-p", repo.clone_url, MIRROR_REFSPEC], repo, cwd=repo_path
        )
        if returncode != 0:
            self.logger.error(f"[ERROR] Fetch failed for {repo.name}: {output[:500]}")
            return SyncResult(repo, repo_path, SyncOutcome.FETCH_FAILED, output)

        self.logger.info(f"[SUCCESS] Pulled latest updates for {repo.name}")
        return SyncResult(repo, repo_path, SyncOutcome.UPDATED, output)

    def _run_git(self, args: List[str], repo: Repository, cwd: Optional[Path] = None):
        env = dict(os.environ, GIT_TERMINAL_PROMPT="0")
        secret = url_password(repo.clone_url)
        try:
            result = subprocess.run(
                [self.git_executable] + args,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                # remote: lines carry whatever bytes the server sends
                encoding="utf-8",
                errors="replace",
                cwd=str(cwd) if cwd else None,
                env=env,
            )
        except OSError as e:
            return -1, redact_credentials(f"{type(e).__name__}: {e}", secret)

        output = redact_credentials(result.stdout or "", secret).strip()
        if output:
            self.logger.debug(output)
        return result.returncode, output

    def _mirror_dirs(self, target_name: Optional[str] = None) -> List[Path]:
        if target_name:
            if not is_safe_path_segment(target_name):
                raise SyncError(f"Refusing to use {target_name!r} as a directory name")
            target_dirs = [self.backup_path / target_name]
        else:
            target_dirs = [p for p in sorted(self.backup_path.iterdir()) if p.is_dir()]

        mirrors = []
        for target_dir in target_dirs:
            if target_dir.is_dir():
                mirrors.extend(p for p in sorted(target_dir.iterdir()) if p.is_dir())
        return mirrors

    def list_mirrors(self, target_name: Optional[str] = None) -> list:
        """List all local mirrors"""
        mirrors = []
        for mirror in self._mirror_dirs(target_name):
            size = sum(f.stat().st_size for f in mirror.rglob("*") if f.is_file())
            mirrors.append(
                {
                    "path": str(mirror),
                    "target": mirror.parent.name,
                    "name": mirror.name,
                    "size_mb": size / 1024 / 1024,
                    "modified": datetime.fromtimestamp(
                        mirror.stat().st_mtime
                    ).isoformat(),
                }
            )
        return mirrors

    def verify_mirrors(self, target_name: Optional[str] = None) -> Dict[Path, bool]:
        """Check that every mirror directory holds a bare repository"""
        results = {}
        for mirror in self._mirror_dirs(target_name):
            try:
                result = subprocess.run(
                    [
                        self.git_executable,
                        "--git-dir",
                        str(mirror),
                        "rev-parse",
                        "--is-bare-repository",
                    ],
                    capture_output=True,
                    encoding="utf-8",
                    errors="replace",
                    check=False,
                )
                valid = result.returncode == 0 and result.stdout.strip() == "true"
            except OSError as e:
                self.logger.error(f"[VERIFY] Could not run git for {mirror}: {e}")
                valid = False

            if not valid:
                self.logger.warning(f"[VERIFY] {mirror} is not a valid mirror repository")
            results[mirror] = valid
        return results


def sync_repository(target_name: str, repo: Repository, backup_root: str) -> SyncResult:
    return LocalBackup(backup_root).sync(target_name, repo)
