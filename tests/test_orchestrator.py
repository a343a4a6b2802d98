"""
Tests for BackupOrchestrator and the command line entry point

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
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml
from loguru import logger

from gitbackup.base import Repository, Target
from gitbackup.errors import ParseError, TransportError
from gitbackup.local_backup import SyncOutcome, SyncResult
from gitbackup.main import (
    BackupOrchestrator,
    BackupSummary,
    get_env_default,
    main,
    setup_logging,
)


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Run every test in its own directory without ambient configuration"""
    monkeypatch.chdir(tmp_path)
    for var in [
        "GITBACKUP_CONFIG",
        "BACKUP_DIRECTORY",
        "LOG_FILE",
        "GITHUB_TOKEN",
        "GH_TOKEN",
        "GITLAB_TOKEN",
        "BITBUCKET_APP_PASSWORD",
        "BITBUCKET_PASSWORD",
    ]:
        monkeypatch.delenv(var, raising=False)
    yield
    logger.remove()
    logging.getLogger().handlers.clear()


@pytest.fixture
def source_repo(tmp_path):
    """Create a local git repository to mirror"""
    repo_path = tmp_path / "source"
    repo_path.mkdir()
    for args in (
        ["init"],
        ["config", "user.email", "test@test.com"],
        ["config", "user.name", "Test User"],
    ):
        subprocess.run(["git", *args], cwd=repo_path, capture_output=True, check=True)
    (repo_path / "README.md").write_text("# Test Repository\n")
    subprocess.run(["git", "add", "README.md"], cwd=repo_path, capture_output=True, check=True)
    subprocess.run(
        ["git", "-c", "commit.gpgsign=false", "commit", "-m", "Initial commit"],
        cwd=repo_path,
        capture_output=True,
        check=True,
    )
    return repo_path


def github_target(name: str) -> Target:
    return Target(name=name, source="github", type="orgs", entity=name, token="T")


class TestSetupLogging:
    """Tests for setup_logging function"""

    def test_setup_logging_default(self):
        """Test default logging setup"""
        result = setup_logging()
        assert result is not None
        assert Path("logs").exists()

    def test_setup_logging_verbose(self):
        """Test verbose logging setup"""
        assert setup_logging(verbose=True) is not None

    def test_setup_logging_custom_file(self):
        """Test custom log file name"""
        setup_logging(log_file="custom.log")
        assert Path("logs/custom.log").exists()

    def test_stdlib_loggers_reach_loguru(self):
        """Test that records from module loggers end up in the log file"""
        setup_logging(log_file="intercept.log")

        logging.getLogger("LocalBackup").info("[CLONE] hello from stdlib")
        logger.complete()

        assert "hello from stdlib" in Path("logs/intercept.log").read_text()


class TestGetEnvDefault:
    """Tests for get_env_default function"""

    def test_get_env_default_exists(self, monkeypatch):
        """Test getting existing environment variable"""
        monkeypatch.setenv("TEST_VAR", "test_value")
        assert get_env_default("TEST_VAR") == "test_value"

    def test_get_env_default_missing(self, monkeypatch):
        """Test getting missing environment variable"""
        monkeypatch.delenv("MISSING_VAR", raising=False)
        assert get_env_default("MISSING_VAR") is None

    def test_get_env_default_fallback(self, monkeypatch):
        """Test fallback value for missing variable"""
        monkeypatch.delenv("MISSING_VAR", raising=False)
        assert get_env_default("MISSING_VAR", "fallback") == "fallback"


class TestBackupSummary:
    def test_counts(self):
        summary = BackupSummary()
        repo = Repository(name="r", clone_url="x")
        for outcome in SyncOutcome:
            summary.add(SyncResult(repo, None, outcome))

        assert summary.cloned == 1
        assert summary.updated == 1
        assert summary.failed == 3
        assert summary.total == 5
        assert not summary.ok

    def test_failed_target_is_not_ok(self):
        summary = BackupSummary(cloned=2, failed_targets=["acme"])
        assert not summary.ok


class TestBackupTarget:
    """Tests for mirroring the repositories of one target"""

    def test_mirrors_every_repository(self, tmp_path, source_repo):
        orchestrator = BackupOrchestrator(str(tmp_path / "backups"), show_progress=False)
        repos = [
            Repository(name="one", clone_url=str(source_repo)),
            Repository(name="two", clone_url=str(source_repo)),
        ]

        with patch("gitbackup.main.list_repositories", return_value=repos):
            results = orchestrator.backup_target(github_target("acme"))

        assert [r.outcome for r in results] == [SyncOutcome.CLONED, SyncOutcome.CLONED]
        assert (tmp_path / "backups" / "acme" / "one").is_dir()
        assert (tmp_path / "backups" / "acme" / "two").is_dir()

    def test_second_run_updates(self, tmp_path, source_repo):
        orchestrator = BackupOrchestrator(str(tmp_path / "backups"), show_progress=False)
        repos = [Repository(name="one", clone_url=str(source_repo))]

        with patch("gitbackup.main.list_repositories", return_value=repos):
            orchestrator.backup_target(github_target("acme"))
            results = orchestrator.backup_target(github_target("acme"))

        assert results[0].outcome == SyncOutcome.UPDATED

    def test_repository_failure_does_not_stop_target(self, tmp_path, source_repo):
        orchestrator = BackupOrchestrator(str(tmp_path / "backups"), show_progress=False)
        repos = [
            Repository(name="broken", clone_url=str(tmp_path / "missing")),
            Repository(name="fine", clone_url=str(source_repo)),
        ]

        with patch("gitbackup.main.list_repositories", return_value=repos):
            results = orchestrator.backup_target(github_target("acme"))

        assert [r.outcome for r in results] == [
            SyncOutcome.CLONE_FAILED,
            SyncOutcome.CLONED,
        ]

    def test_empty_listing(self, tmp_path):
        orchestrator = BackupOrchestrator(str(tmp_path / "backups"), show_progress=False)

        with patch("gitbackup.main.list_repositories", return_value=[]):
            assert orchestrator.backup_target(github_target("acme")) == []

    def test_listing_error_propagates(self, tmp_path):
        orchestrator = BackupOrchestrator(str(tmp_path / "backups"), show_progress=False)

        with patch(
            "gitbackup.main.list_repositories", side_effect=ParseError("bad payload")
        ):
            with pytest.raises(ParseError):
                orchestrator.backup_target(github_target("acme"))


class TestRunBackup:
    """Tests for failure isolation across targets"""

    def test_failing_target_does_not_stop_others(self, tmp_path, source_repo):
        orchestrator = BackupOrchestrator(str(tmp_path / "backups"), show_progress=False)

        def fake_listing(target):
            if target.name == "down":
                raise TransportError("connection refused")
            return [Repository(name="repo", clone_url=str(source_repo))]

        with patch("gitbackup.main.list_repositories", side_effect=fake_listing):
            summary = orchestrator.run_backup(
                [github_target("down"), github_target("up")]
            )

        assert summary.failed_targets == ["down"]
        assert summary.cloned == 1
        assert (tmp_path / "backups" / "up" / "repo").is_dir()
        assert not (tmp_path / "backups" / "down").exists()

    def test_unrecognized_source_fails_target_without_request(self, tmp_path):
        orchestrator = BackupOrchestrator(str(tmp_path / "backups"), show_progress=False)
        target = Target(name="x", source="svn", entity="someone", token="T")

        with patch("gitbackup.base.requests.get") as get:
            summary = orchestrator.run_backup([target])

        get.assert_not_called()
        assert summary.failed_targets == ["x"]
        assert not summary.ok

    def test_unsafe_target_name(self, tmp_path):
        orchestrator = BackupOrchestrator(str(tmp_path / "backups"), show_progress=False)

        with patch("gitbackup.main.list_repositories") as listing:
            summary = orchestrator.run_backup([github_target("..")])

        listing.assert_not_called()
        assert summary.failed_targets == [".."]

    def test_all_successful(self, tmp_path, source_repo):
        orchestrator = BackupOrchestrator(str(tmp_path / "backups"), show_progress=False)
        repos = [Repository(name="repo", clone_url=str(source_repo))]

        with patch("gitbackup.main.list_repositories", return_value=repos):
            summary = orchestrator.run_backup([github_target("a"), github_target("b")])

        assert summary.ok
        assert summary.cloned == 2


class TestRepositoryFailureContainment:
    """Tests that filesystem problems stay scoped to one repository"""

    def test_blocked_target_directory(self, tmp_path, source_repo):
        orchestrator = BackupOrchestrator(str(tmp_path / "backups"), show_progress=False)
        (tmp_path / "backups" / "blocked").write_text("not a directory")
        repos = [Repository(name="repo", clone_url=str(source_repo))]

        with patch("gitbackup.main.list_repositories", return_value=repos):
            summary = orchestrator.run_backup(
                [github_target("blocked"), github_target("open")]
            )

        assert summary.failed == 1
        assert summary.cloned == 1
        assert summary.failed_targets == []
        assert (tmp_path / "backups" / "open" / "repo").is_dir()


class TestListAndVerifyBackups:
    def test_list_and_verify(self, tmp_path, source_repo):
        orchestrator = BackupOrchestrator(str(tmp_path / "backups"), show_progress=False)
        repos = [Repository(name="repo", clone_url=str(source_repo))]
        with patch("gitbackup.main.list_repositories", return_value=repos):
            orchestrator.run_backup([github_target("acme")])

        mirrors = orchestrator.list_backups()

        assert [m["name"] for m in mirrors] == ["repo"]
        assert orchestrator.verify_backups() is True

    def test_verify_detects_broken_mirror(self, tmp_path):
        orchestrator = BackupOrchestrator(str(tmp_path / "backups"), show_progress=False)
        (tmp_path / "backups" / "acme" / "junk").mkdir(parents=True)

        assert orchestrator.verify_backups() is False


class TestMain:
    """Tests for the command line entry point"""

    def write_config(self, tmp_path, backup_dir, targets):
        config_path = tmp_path / "gitbackup.yaml"
        config_path.write_text(
            yaml.safe_dump({"backup_directory": str(backup_dir), "targets": targets})
        )
        return str(config_path)

    def test_successful_run(self, tmp_path, source_repo):
        config = self.write_config(
            tmp_path,
            tmp_path / "backups",
            [{"name": "acme", "source": "github", "entity": "acme-co", "token": "T"}],
        )
        repos = [Repository(name="repo", clone_url=str(source_repo))]

        with patch("gitbackup.main.list_repositories", return_value=repos):
            assert main(["--config", config, "--no-progress"]) == 0

        assert (tmp_path / "backups" / "acme" / "repo").is_dir()

    def test_failed_target_sets_exit_status(self, tmp_path):
        config = self.write_config(
            tmp_path,
            tmp_path / "backups",
            [{"name": "acme", "source": "github", "entity": "acme-co", "token": "T"}],
        )

        with patch(
            "gitbackup.main.list_repositories", side_effect=TransportError("offline")
        ):
            assert main(["--config", config, "--no-progress"]) == 1

    def test_target_filter(self, tmp_path, source_repo):
        config = self.write_config(
            tmp_path,
            tmp_path / "backups",
            [
                {"name": "a", "source": "github", "entity": "a", "token": "T"},
                {"name": "b", "source": "github", "entity": "b", "token": "T"},
            ],
        )
        repos = [Repository(name="repo", clone_url=str(source_repo))]

        with patch("gitbackup.main.list_repositories", return_value=repos) as listing:
            assert main(["--config", config, "--target", "b", "--no-progress"]) == 0

        assert [call.args[0].name for call in listing.call_args_list] == ["b"]

    def test_backup_dir_overrides_config(self, tmp_path, source_repo):
        config = self.write_config(
            tmp_path,
            tmp_path / "from-config",
            [{"name": "acme", "source": "github", "entity": "acme-co", "token": "T"}],
        )
        repos = [Repository(name="repo", clone_url=str(source_repo))]
        override = tmp_path / "override"

        with patch("gitbackup.main.list_repositories", return_value=repos):
            main(["--config", config, "--backup-dir", str(override), "--no-progress"])

        assert (override / "acme" / "repo").is_dir()
        assert not (tmp_path / "from-config").exists()

    def test_missing_config(self, tmp_path):
        assert main(["--config", str(tmp_path / "nope.yaml")]) == 1

    def test_missing_backup_directory(self, tmp_path):
        config_path = tmp_path / "gitbackup.yaml"
        config_path.write_text("targets: []\n")
        assert main(["--config", str(config_path)]) == 1

    def test_list_without_config(self, tmp_path):
        code = main(
            [
                "--config",
                str(tmp_path / "nope.yaml"),
                "--backup-dir",
                str(tmp_path / "backups"),
                "--list",
            ]
        )
        assert code == 0

    def verify_args(self, tmp_path, *targets):
        args = [
            "--config",
            str(tmp_path / "nope.yaml"),
            "--backup-dir",
            str(tmp_path / "backups"),
            "--verify",
        ]
        for name in targets:
            args += ["--target", name]
        return args

    def test_verify_checks_every_target(self, tmp_path):
        (tmp_path / "backups" / "one" / "repo").mkdir(parents=True)
        subprocess.run(
            ["git", "init", "--bare", str(tmp_path / "backups" / "one" / "repo")],
            capture_output=True,
            check=True,
        )
        (tmp_path / "backups" / "two" / "junk").mkdir(parents=True)

        assert main(self.verify_args(tmp_path, "one")) == 0
        assert main(self.verify_args(tmp_path, "one", "two")) == 1

    def test_unsafe_target_filter(self, tmp_path):
        assert main(self.verify_args(tmp_path, "..")) == 1
