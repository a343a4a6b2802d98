#!/usr/bin/env python3
"""
Mirror every git repository of GitHub, GitLab and Bitbucket accounts locally
"""

import argparse
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from loguru import logger
from rich_argparse import ArgumentDefaultsRichHelpFormatter
from tqdm import tqdm

from .base import Target, is_safe_path_segment
from .config import BackupConfig, load_config
from .errors import BackupError, ConfigurationError
from .local_backup import LocalBackup, SyncOutcome, SyncResult
from .registry import list_repositories, supported_sources


class InterceptHandler(logging.Handler):
    """Forward records of stdlib loggers to loguru"""

    def emit(self, record: logging.LogRecord):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging(verbose: bool = False, log_file: str = "gitbackup.log"):
    """Setup console and file logging with loguru"""

    logger.remove()

    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)
    log_file_path = log_dir / log_file

    log_level = "DEBUG" if verbose else "INFO"

    console_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
        "<level>{level: <8}</level> | "
        "<level>{message}</level>"
    )

    logger.add(sys.stdout, format=console_format, level=log_level, colorize=True)

    file_format = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}"

    logger.add(
        log_file_path,
        format=file_format,
        level=log_level,
        rotation="10 MB",
        retention="30 days",
        compression="zip",
        encoding="utf-8",
    )

    # Managers and LocalBackup log through the standard library
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    logger.info("[CONFIG] Logging configured")
    logger.debug(f"Log file: {log_file_path}")

    return logger


@dataclass
class BackupSummary:
    cloned: int = 0
    updated: int = 0
    failed: int = 0
    failed_targets: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.cloned + self.updated + self.failed

    @property
    def ok(self) -> bool:
        return self.failed == 0 and not self.failed_targets

    def add(self, result: SyncResult):
        if result.outcome == SyncOutcome.CLONED:
            self.cloned += 1
        elif result.outcome == SyncOutcome.UPDATED:
            self.updated += 1
        else:
            self.failed += 1


class BackupOrchestrator:
    def __init__(self, backup_directory: str, show_progress: bool = True):
        self.backup_directory = backup_directory
        self.show_progress = show_progress
        self.local_backup = LocalBackup(backup_directory)

    def backup_target(self, target: Target) -> List[SyncResult]:
        """
        Mirror every repository of one target.

        Target-level problems (unknown source, failed or malformed listing)
        raise and nothing is synced. Repository-level failures are logged
        and the remaining repositories are still processed.
        """
        logger.info(f'[BACKUP] Backing up target "{target.name}" ({target.source})')

        if not is_safe_path_segment(target.name):
            raise ConfigurationError(
                f"Target name {target.name!r} cannot be used as a directory name"
            )

        repos = list_repositories(target)
        logger.info(f"[OK] Found {len(repos)} repositories for {target.name}")

        results = []
        with tqdm(
            repos,
            desc=target.name,
            unit="repo",
            disable=not self.show_progress or not repos,
        ) as pbar:
            for repo in pbar:
                pbar.set_postfix_str(repo.name)
                logger.info(f"[REPO] #> {repo.name}")
                result = self.local_backup.sync(target.name, repo)
                self._report(result)
                results.append(result)
        return results

    def _report(self, result: SyncResult):
        name = result.repository.name
        if result.outcome == SyncOutcome.CLONED:
            logger.info(f"[SUCCESS] Cloned repository {name}")
        elif result.outcome == SyncOutcome.UPDATED:
            logger.info(f"[SUCCESS] Pulled latest updates in repository {name}")
        elif result.outcome == SyncOutcome.CLONE_FAILED:
            logger.error(f"[FAIL] Error cloning repository {name}: {result.output}")
        elif result.outcome == SyncOutcome.FETCH_FAILED:
            logger.error(f"[FAIL] Error pulling in repository {name}: {result.output}")
        else:
            logger.error(f"[FAIL] Rejected repository {name!r}: {result.output}")

    def run_backup(self, targets: List[Target]) -> BackupSummary:
        """Back up targets one after another, isolating failures per target"""
        summary = BackupSummary()
        logger.info(f"[START] Backing up {len(targets)} targets to {self.backup_directory}")

        for target in targets:
            try:
                for result in self.backup_target(target):
                    summary.add(result)
            except BackupError as e:
                logger.error(f'[ERROR] Failed to back up target "{target.name}": {e}')
                summary.failed_targets.append(target.name)

        logger.info("=" * 60)
        logger.info("[SUMMARY] BACKUP SUMMARY")
        logger.info("=" * 60)
        logger.info(f"[SUCCESS] Cloned repositories: {summary.cloned}")
        logger.info(f"[SUCCESS] Updated repositories: {summary.updated}")
        logger.info(f"[FAIL] Failed repositories: {summary.failed}")
        logger.info(f"[TOTAL] Total repositories: {summary.total}")
        if summary.failed_targets:
            logger.error(
                f"[FAIL] Targets not backed up: {', '.join(summary.failed_targets)}"
            )
        if summary.ok:
            logger.info("[COMPLETE] All repositories backed up successfully!")
        else:
            logger.error("[WARN] Some backups failed - check logs for details")
        return summary

    def list_backups(self, target_name: Optional[str] = None) -> list:
        mirrors = self.local_backup.list_mirrors(target_name)
        if not mirrors:
            logger.info("No local mirrors found")
            return mirrors

        logger.info(f"Found {len(mirrors)} local mirrors:")
        for mirror in mirrors:
            logger.info(
                f"  - {mirror['path']} ({mirror['size_mb']:.2f} MB) - {mirror['modified']}"
            )
        return mirrors

    def verify_backups(self, target_name: Optional[str] = None) -> bool:
        logger.info(f"[VERIFY] Verifying mirrors in: {self.backup_directory}")
        results = self.local_backup.verify_mirrors(target_name)
        failed = [path for path, valid in results.items() if not valid]

        logger.info("=" * 50)
        logger.info(
            f"[VERIFY] Verification complete: {len(results) - len(failed)}/{len(results)} mirrors valid"
        )
        for path in failed:
            logger.error(f"[VERIFY] Invalid mirror: {path}")
        return not failed


def get_env_default(env_var: str, fallback=None):
    """Get value from environment or .env file"""
    return os.getenv(env_var, fallback)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gitbackup",
        description="[bold blue]Git Repository Backup[/bold blue] - Mirror every repository of GitHub, GitLab and Bitbucket accounts locally",
        epilog=f"""
[bold green]Examples:[/bold green]
  [dim]# Mirror every configured target[/dim]
  [yellow]%(prog)s[/yellow] [cyan]--config[/cyan] [magenta]gitbackup.yaml[/magenta]

  [dim]# Mirror a single target into a different directory[/dim]
  [yellow]%(prog)s[/yellow] [cyan]--target[/cyan] acme [cyan]--backup-dir[/cyan] [magenta]/backups[/magenta]

  [dim]# List and verify existing mirrors[/dim]
  [yellow]%(prog)s[/yellow] [cyan]--list[/cyan]
  [yellow]%(prog)s[/yellow] [cyan]--verify[/cyan]

[bold blue]Supported sources:[/bold blue] {', '.join(supported_sources())}
        """,
        formatter_class=ArgumentDefaultsRichHelpFormatter,
    )

    config_group = parser.add_argument_group("Configuration")
    config_group.add_argument(
        "--config",
        "-c",
        default=get_env_default("GITBACKUP_CONFIG", "gitbackup.yaml"),
        metavar="FILE",
        help="YAML file listing the targets to back up (env: GITBACKUP_CONFIG)",
    )
    config_group.add_argument(
        "--backup-dir",
        default=get_env_default("BACKUP_DIRECTORY"),
        metavar="DIR",
        help="Root directory for mirrors, overrides backup_directory from the config (env: BACKUP_DIRECTORY)",
    )
    config_group.add_argument(
        "--target",
        action="append",
        metavar="NAME",
        help="Only back up the named target (repeatable)",
    )

    ops_group = parser.add_argument_group("Operations")
    ops_group.add_argument(
        "--list", action="store_true", help="List existing local mirrors"
    )
    ops_group.add_argument(
        "--verify",
        action="store_true",
        help="Check that every local mirror is a bare repository",
    )
    ops_group.add_argument(
        "--no-progress", action="store_true", help="Disable the progress bar"
    )

    log_group = parser.add_argument_group("Logging Options")
    log_group.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )
    log_group.add_argument(
        "--log-file",
        default=get_env_default("LOG_FILE", "gitbackup.log"),
        metavar="FILE",
        help="Log file name under logs/ (env: LOG_FILE)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    # Load environment variables first (before parsing args)
    load_dotenv()

    args = build_parser().parse_args(argv)
    setup_logging(verbose=args.verbose, log_file=args.log_file)

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        # Listing and verifying only need a backup directory
        if not ((args.list or args.verify) and args.backup_dir):
            logger.error(f"[ERROR] {e}")
            return 1
        config = BackupConfig()

    backup_directory = args.backup_dir or config.backup_directory
    if not backup_directory:
        logger.error(
            "[ERROR] No backup directory. Set backup_directory in the config, pass --backup-dir or set BACKUP_DIRECTORY."
        )
        return 1

    targets = config.targets
    if args.target:
        unknown = sorted(set(args.target) - {t.name for t in targets})
        if unknown:
            logger.warning(f"[WARN] Unknown targets ignored: {', '.join(unknown)}")
        targets = [t for t in targets if t.name in args.target]

    orchestrator = BackupOrchestrator(
        backup_directory, show_progress=not args.no_progress
    )

    # None lists or verifies every target directory
    target_names = args.target or [None]
    try:
        if args.list:
            for name in target_names:
                orchestrator.list_backups(name)
            return 0
        if args.verify:
            verified = [orchestrator.verify_backups(name) for name in target_names]
            return 0 if all(verified) else 1
    except BackupError as e:
        logger.error(f"[ERROR] {e}")
        return 1

    if not targets:
        logger.warning("[WARN] No targets to back up")
        return 0

    summary = orchestrator.run_backup(targets)
    return 0 if summary.ok else 1


if __name__ == "__main__":
    sys.exit(main())
