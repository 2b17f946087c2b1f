import pytest

from conftest import make_sources
from jobclient.jobs.errors import ValidationError
from jobclient.jobs.models import FileStatus, JobForm, JobStatus


def _add(store, name="job", files=(("a.bin", 100), ("b.bin", 300))):
    return store.add_job(JobForm(job_name=name), make_sources(*files))


def _assert_total_files_invariant(store):
    for job in store.jobs:
        assert job.progress.total_files == len(job.files)


# ---------------------------------------------------------------------------
# add_job
# ---------------------------------------------------------------------------

def test_add_job_creates_pending_job(store):
    job = _add(store)

    assert job.status == JobStatus.PENDING
    assert [f.name for f in job.files] == ["a.bin", "b.bin"]
    assert [f.index for f in job.files] == [0, 1]
    assert all(f.status == FileStatus.PENDING and f.progress == 0 for f in job.files)
    assert job.progress.total_files == 2
    assert job.progress.overall_progress == 0
    assert job.completed_at is None
    assert store.get_job(job.id) == job


def test_add_job_gives_unique_ids(store):
    job = _add(store)
    other = _add(store)
    ids = {job.id, other.id} | {f.id for f in job.files} | {f.id for f in other.files}
    assert len(ids) == 6


def test_add_job_inserts_most_recent_first(store):
    first = _add(store, "first")
    second = _add(store, "second")
    assert [j.id for j in store.jobs] == [second.id, first.id]


def test_add_job_rejects_empty_files(store):
    with pytest.raises(ValidationError):
        store.add_job(JobForm(job_name="job"), [])
    assert store.jobs == ()


@pytest.mark.parametrize("name", ["", "   "])
def test_add_job_rejects_blank_name(store, name):
    with pytest.raises(ValidationError):
        _add(store, name)
    assert store.jobs == ()


def test_add_job_accepts_mapping_with_alias(store):
    job = store.add_job(
        {"jobName": "sim", "priority": "high", "cluster": "a100"},
        make_sources(("a.bin", 1)),
    )
    assert job.name == "sim"
    payload = job.form.to_payload()
    assert payload == {"jobName": "sim", "priority": "high", "cluster": "a100"}


def test_add_job_rejects_mapping_without_name(store):
    with pytest.raises(ValidationError):
        store.add_job({"description": "no name"}, make_sources(("a.bin", 1)))


# ---------------------------------------------------------------------------
# update_job_status
# ---------------------------------------------------------------------------

def test_status_follows_state_machine(store):
    job = _add(store)
    assert store.update_job_status(job.id, JobStatus.UPLOADING)
    assert store.update_job_status(job.id, JobStatus.SUBMITTING)
    assert store.update_job_status(job.id, JobStatus.COMPLETED, submission_id="srv-9")

    done = store.get_job(job.id)
    assert done.status == JobStatus.COMPLETED
    assert done.submission_id == "srv-9"
    assert done.completed_at is not None


def test_illegal_transition_is_ignored(store):
    job = _add(store)
    assert not store.update_job_status(job.id, JobStatus.COMPLETED)
    assert not store.update_job_status(job.id, JobStatus.SUBMITTING)
    assert store.get_job(job.id).status == JobStatus.PENDING


@pytest.mark.parametrize("terminal", [JobStatus.COMPLETED, JobStatus.FAILED])
def test_terminal_job_never_changes(store, terminal):
    job = _add(store)
    store.update_job_status(job.id, JobStatus.UPLOADING)
    store.update_job_status(job.id, JobStatus.SUBMITTING)
    store.update_job_status(job.id, terminal, error="boom" if terminal == JobStatus.FAILED else None)
    stamped = store.get_job(job.id).completed_at

    for target in JobStatus:
        assert not store.update_job_status(job.id, target, error="again")

    after = store.get_job(job.id)
    assert after.status == terminal
    assert after.completed_at == stamped


def test_failed_records_error_and_kind(store):
    job = _add(store)
    store.update_job_status(job.id, JobStatus.UPLOADING)
    store.update_job_status(job.id, JobStatus.FAILED, error="nope", error_kind="conflict")
    failed = store.get_job(job.id)
    assert failed.error == "nope"
    assert failed.error_kind == "conflict"
    assert failed.completed_at is not None


def test_status_accepts_plain_strings(store):
    job = _add(store)
    assert store.update_job_status(job.id, "uploading")
    assert store.get_job(job.id).status is JobStatus.UPLOADING


def test_update_status_unknown_job_is_noop(store):
    _add(store)
    before = store.jobs
    assert not store.update_job_status("missing", JobStatus.FAILED)
    assert store.jobs is before


def test_cancel_forces_failed_from_pending(store):
    job = _add(store)
    assert store.cancel_job(job.id, "user changed their mind")
    cancelled = store.get_job(job.id)
    assert cancelled.status == JobStatus.FAILED
    assert cancelled.error == "user changed their mind"
    assert not store.cancel_job(job.id)


# ---------------------------------------------------------------------------
# update_file_status
# ---------------------------------------------------------------------------

def test_file_update_recomputes_progress(store):
    job = _add(store)
    first = job.files[0]

    assert store.update_file_status(job.id, first.id, status=FileStatus.UPLOADING, progress=50)
    updated = store.get_job(job.id)
    assert updated.files[0].progress == 50
    assert updated.progress.overall_progress == 13

    store.update_file_status(job.id, first.id, status=FileStatus.COMPLETED, progress=97)
    updated = store.get_job(job.id)
    assert updated.progress.files_uploaded == 1
    assert updated.progress.overall_progress == 25
    _assert_total_files_invariant(store)


def test_file_update_unknown_ids_are_noops(store):
    job = _add(store)
    before = store.jobs
    assert not store.update_file_status("missing", job.files[0].id, progress=10)
    assert not store.update_file_status(job.id, "missing", progress=10)
    assert store.jobs is before


def test_file_update_ignored_once_job_is_terminal(store):
    job = _add(store)
    store.cancel_job(job.id)
    assert not store.update_file_status(job.id, job.files[0].id, progress=80)
    assert store.get_job(job.id).files[0].progress == 0


def test_snapshots_are_never_modified_in_place(store):
    job = _add(store)
    snapshot = store.jobs
    store.update_file_status(job.id, job.files[0].id, status="uploading", progress=40)
    store.update_job_status(job.id, JobStatus.UPLOADING)

    assert snapshot[0].status == JobStatus.PENDING
    assert snapshot[0].files[0].progress == 0
    assert store.jobs[0].files[0].progress == 40


def test_total_files_invariant_after_every_mutation(store):
    job = _add(store, files=(("a", 1), ("b", 2), ("c", 3)))
    _assert_total_files_invariant(store)
    for entry in job.files:
        store.update_file_status(job.id, entry.id, status=FileStatus.UPLOADING, progress=30)
        _assert_total_files_invariant(store)
        store.update_file_status(job.id, entry.id, status=FileStatus.FAILED, error="x")
        _assert_total_files_invariant(store)
    store.update_job_status(job.id, JobStatus.UPLOADING)
    _assert_total_files_invariant(store)


# ---------------------------------------------------------------------------
# removal and stats
# ---------------------------------------------------------------------------

def test_remove_job(store):
    job = _add(store)
    other = _add(store)
    store.remove_job(job.id)
    assert store.get_job(job.id) is None
    assert [j.id for j in store.jobs] == [other.id]


def test_remove_unknown_job_is_noop(store):
    _add(store)
    store.remove_job("missing")
    assert len(store.jobs) == 1


def test_clear_terminal_jobs_keeps_active_in_order(store):
    pending = _add(store, "pending")
    completed = _add(store, "completed")
    uploading = _add(store, "uploading")
    failed = _add(store, "failed")
    submitting = _add(store, "submitting")

    for job_id in (completed.id, uploading.id, submitting.id):
        store.update_job_status(job_id, JobStatus.UPLOADING)
    for job_id in (completed.id, submitting.id):
        store.update_job_status(job_id, JobStatus.SUBMITTING)
    store.update_job_status(completed.id, JobStatus.COMPLETED)
    store.cancel_job(failed.id)

    assert store.clear_terminal_jobs() == 2
    assert [j.id for j in store.jobs] == [submitting.id, uploading.id, pending.id]
    assert store.clear_terminal_jobs() == 0


def test_stats_and_activity(store):
    assert store.get_stats() == {
        "total": 0, "pending": 0, "uploading": 0, "submitting": 0, "completed": 0, "failed": 0,
    }
    assert not store.has_active_jobs()

    first = _add(store)
    second = _add(store)
    store.update_job_status(first.id, JobStatus.UPLOADING)
    stats = store.get_stats()
    assert stats["total"] == 2
    assert stats["pending"] == 1
    assert stats["uploading"] == 1
    assert store.has_active_jobs()
    assert store.is_active(second.id)

    store.cancel_job(first.id)
    store.cancel_job(second.id)
    assert store.get_stats()["failed"] == 2
    assert not store.has_active_jobs()
    assert store.get_jobs_by_status(JobStatus.FAILED) == list(store.jobs)


def test_subscribers_receive_each_snapshot(store):
    seen = []
    unsubscribe = store.subscribe(seen.append)

    job = _add(store)
    store.update_job_status(job.id, JobStatus.UPLOADING)
    assert len(seen) == 2
    assert seen[-1] is store.jobs

    unsubscribe()
    store.remove_job(job.id)
    assert len(seen) == 2


def test_failing_subscriber_does_not_break_mutation(store):
    def broken(_snapshot):
        raise RuntimeError("listener bug")

    store.subscribe(broken)
    job = _add(store)
    assert store.get_job(job.id) is not None
