from pathlib import Path

from models.job_models import Job, JobKind, JobStage
from utils.cleanup import discard_files, finalize_job_files, prune_empty_dir
from utils.job_errors import TranscodeError


def _job_with_files(tmp_path: Path, stage: JobStage) -> Job:
    uploads = tmp_path / "uploads"
    renders = tmp_path / "renders"
    uploads.mkdir()
    renders.mkdir()
    image = uploads / "img"
    audio = uploads / "aud"
    output = renders / "t.mp4"
    for path in (image, audio, output):
        path.write_bytes(b"data")
    return Job(
        kind=JobKind.RENDER,
        output_filename="t.mp4",
        output_path=output,
        input_paths=[image, audio],
        stage=stage,
    )


def test_completed_job_deletes_files_and_prunes_scratch(tmp_path):
    job = _job_with_files(tmp_path, JobStage.COMPLETED)

    report = finalize_job_files(job, tmp_path / "uploads")

    assert sorted(report.deleted) == sorted(job.owned_files())
    assert not any(path.exists() for path in job.owned_files())
    assert not (tmp_path / "uploads").exists()
    assert report.pruned_dirs == [tmp_path / "uploads"]
    assert (tmp_path / "renders").exists()


def test_scratch_dir_kept_when_other_jobs_use_it(tmp_path):
    job = _job_with_files(tmp_path, JobStage.COMPLETED)
    other = tmp_path / "uploads" / "other-job-part"
    other.write_bytes(b"busy")

    report = finalize_job_files(job, tmp_path / "uploads")

    assert other.exists()
    assert report.pruned_dirs == []


def test_failed_job_retains_everything(tmp_path, caplog):
    job = _job_with_files(tmp_path, JobStage.TRANSCODING)
    job.fail(TranscodeError("boom"))

    with caplog.at_level("WARNING", logger="utils.cleanup"):
        report = finalize_job_files(job, tmp_path / "uploads")

    assert report.deleted == []
    assert sorted(report.retained) == sorted(job.owned_files())
    assert all(path.exists() for path in job.owned_files())
    assert "Retaining" in caplog.text


def test_failed_job_reports_only_existing_files(tmp_path):
    job = _job_with_files(tmp_path, JobStage.TRANSCODING)
    job.output_path.unlink()
    job.fail(TranscodeError("boom"))

    report = finalize_job_files(job, tmp_path / "uploads")

    assert job.output_path not in report.retained
    assert len(report.retained) == 2


def test_missing_files_do_not_raise(tmp_path):
    job = _job_with_files(tmp_path, JobStage.COMPLETED)
    job.input_paths[0].unlink()

    report = finalize_job_files(job, tmp_path / "uploads")

    assert job.input_paths[0] not in report.deleted
    assert not job.output_path.exists()


def test_non_terminal_job_is_left_alone(tmp_path):
    job = _job_with_files(tmp_path, JobStage.UPLOADING)

    report = finalize_job_files(job, tmp_path / "uploads")

    assert report.deleted == []
    assert all(path.exists() for path in job.owned_files())


def test_prune_is_idempotent(tmp_path):
    scratch = tmp_path / "uploads"
    scratch.mkdir()

    assert prune_empty_dir(scratch)
    assert not prune_empty_dir(scratch)


def test_discard_files(tmp_path):
    kept = tmp_path / "a"
    kept.write_bytes(b"x")

    removed = discard_files([kept, tmp_path / "never-written"])

    assert removed == [kept]
    assert not kept.exists()
