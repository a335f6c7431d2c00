"""
Release the files a job owned once it reaches a terminal stage.

Completed jobs have their inputs and output deleted and the shared scratch
directory pruned when it is left empty. Failed jobs keep every file on disk
for diagnosis; each retained path is logged so nothing is left unaccounted.
Nothing in this module raises.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from models.job_models import CleanupReport, Job, JobStage

logger = logging.getLogger(__name__)


def _unlink_quietly(path: Path) -> bool:
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        logger.debug("Already gone: %s", path)
    except OSError as exc:
        logger.warning("Could not delete %s: %s", path, exc)
    return False


def prune_empty_dir(directory: Path) -> bool:
    """Remove ``directory`` if it exists and is empty. Safe to race with writers."""
    try:
        if not directory.is_dir() or any(directory.iterdir()):
            return False
        directory.rmdir()
    except OSError as exc:
        # Another job wrote into it or removed it between the check and rmdir.
        logger.debug("Left %s in place: %s", directory, exc)
        return False
    logger.info("Removed empty scratch directory %s", directory)
    return True


def discard_files(paths: Iterable[Path]) -> list[Path]:
    """Delete files received for a request that never became a job."""
    return [path for path in paths if _unlink_quietly(path)]


def finalize_job_files(job: Job, scratch_dir: Path) -> CleanupReport:
    report = CleanupReport()

    if not job.is_terminal:
        logger.error("Cleanup requested for job still %s; keeping its files", job.stage.value)
        report.retained.extend(p for p in job.owned_files() if p.exists())
        return report

    if job.stage == JobStage.FAILED:
        # TODO: retained files accumulate under repeated failures; needs an
        # age-based sweep of renders/ and uploads/ if this policy is kept.
        for path in job.owned_files():
            if path.exists():
                report.retained.append(path)
                logger.warning("Retaining %s after failed %s job", path, job.kind.value)
        return report

    for path in job.owned_files():
        if _unlink_quietly(path):
            report.deleted.append(path)

    if prune_empty_dir(Path(scratch_dir)):
        report.pruned_dirs.append(Path(scratch_dir))

    return report
