"""
Tests for the builds.sr.ht exporter.
"""

import json

import pytest

from srht_export.builds_exporter import BuildsExporter, JOB_LOG_FILENAME
from srht_export.fetcher import ResumableFetcher
from srht_export.types import PartialExportError

from conftest import FakeClient, FakeResponse, FakeSession

LOGS = "https://logs.example.org"


def make_job(job_id, status="SUCCESS", tasks=(), tags=("ci",)):
    return {
        "id": job_id,
        "status": status,
        "note": f"job {job_id}",
        "tags": list(tags),
        "visibility": "PUBLIC",
        "log": {"fullURL": f"{LOGS}/{job_id}/log"},
        "tasks": [
            {"name": name, "status": task_status, "log": {"fullURL": f"{LOGS}/{job_id}/{name}/log"}}
            for name, task_status in tasks
        ],
    }


def jobs_handler(*pages):
    """Serve `jobs` pages keyed by cursor: pages[i] is followed by cursor str(i+1)."""
    def handler(query, variables, uploads):
        index = int(variables["cursor"] or 0)
        cursor = str(index + 1) if index + 1 < len(pages) else None
        return {"jobs": {"results": pages[index], "cursor": cursor}}
    return handler


def serve_logs(session, jobs):
    for job in jobs:
        session.routes[job["log"]["fullURL"]] = FakeResponse(200, f"log of {job['id']}\n".encode())
        for task in job["tasks"]:
            session.routes[task["log"]["fullURL"]] = FakeResponse(200, f"{task['name']} output\n".encode())


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def exporter(session, markers):
    def build(handler):
        client = FakeClient(handler, base_url="https://builds.example.org", session=session)
        return BuildsExporter(client, ResumableFetcher(session), markers)
    return build


class TestBuildsExporter:
    """Tests for BuildsExporter."""

    def test_exports_finished_jobs_only(self, exporter, session, out_dir, ctx):
        """Test a finished job is exported and a pending one is skipped."""
        done = make_job(1, tasks=[("build", "SUCCESS"), ("test", "FAILED")])
        pending = make_job(2, status="PENDING")
        serve_logs(session, [done, pending])

        exporter(jobs_handler([done, pending])).export(ctx, out_dir)

        assert sorted(p.name for p in out_dir.iterdir()) == ["1"]
        job_dir = out_dir / "1"
        assert (job_dir / JOB_LOG_FILENAME).read_bytes() == b"log of 1\n"
        assert (job_dir / "build.log").read_bytes() == b"build output\n"
        assert (job_dir / "test.log").read_bytes() == b"test output\n"

        info = json.loads((job_dir / "info.json").read_text())
        assert info["service"] == "builds.sr.ht"
        assert info["name"] == "1"
        assert info["id"] == 1
        assert info["tags"] == ["ci"]
        assert info["note"] == "job 1"

    def test_walks_every_page(self, exporter, session, out_dir, ctx):
        """Test jobs from all pages are exported."""
        first, second = make_job(10), make_job(11)
        serve_logs(session, [first, second])
        handler = jobs_handler([first], [second])

        build = exporter(handler)
        build.export(ctx, out_dir)

        assert (out_dir / "10" / "info.json").is_file()
        assert (out_dir / "11" / "info.json").is_file()
        assert [c["variables"]["cursor"] for c in build.client.calls] == [None, "1"]

    def test_unfinished_tasks_not_downloaded(self, exporter, session, out_dir, ctx):
        """Test pending or running tasks get no log file."""
        job = make_job(3, tasks=[("setup", "SUCCESS"), ("deploy", "PENDING"), ("run", "RUNNING")])
        serve_logs(session, [job])

        exporter(jobs_handler([job])).export(ctx, out_dir)

        assert sorted(p.name for p in (out_dir / "3").iterdir()) == [
            JOB_LOG_FILENAME, "info.json", "setup.log",
        ]

    def test_one_task_failure_is_partial(self, exporter, session, out_dir, ctx):
        """Test one failing task log still exports the other tasks and the marker."""
        names = ["a", "b", "c", "d", "e"]
        job = make_job(4, tasks=[(n, "SUCCESS") for n in names])
        serve_logs(session, [job])
        session.routes[f"{LOGS}/4/c/log"] = FakeResponse(404, b"gone")

        with pytest.raises(PartialExportError) as exc_info:
            exporter(jobs_handler([job])).export(ctx, out_dir)

        assert len(exc_info.value.errors) == 1
        assert "#4/c" in str(exc_info.value)
        job_dir = out_dir / "4"
        for name in ["a", "b", "d", "e"]:
            assert (job_dir / f"{name}.log").is_file()
        assert not (job_dir / "c.log").exists()
        assert (job_dir / "info.json").is_file()

    def test_job_log_failure_skips_marker(self, exporter, session, out_dir, ctx):
        """Test a failed job log leaves the job unmarked so a rerun retries it."""
        broken, fine = make_job(5), make_job(6)
        serve_logs(session, [broken, fine])
        session.routes[f"{LOGS}/5/log"] = FakeResponse(500, b"")

        with pytest.raises(PartialExportError):
            exporter(jobs_handler([broken, fine])).export(ctx, out_dir)

        assert not (out_dir / "5" / "info.json").exists()
        assert (out_dir / "6" / "info.json").is_file()

    def test_rerun_is_idempotent(self, exporter, session, out_dir, ctx):
        """Test a second export downloads nothing for already exported jobs."""
        job = make_job(7, tasks=[("build", "SUCCESS")])
        serve_logs(session, [job])
        handler = jobs_handler([job])

        exporter(handler).export(ctx, out_dir)
        downloads = len(session.calls)
        before = (out_dir / "7" / "info.json").read_bytes()

        exporter(handler).export(ctx, out_dir)

        assert len(session.calls) == downloads
        assert (out_dir / "7" / "info.json").read_bytes() == before

    def test_cancelled_context_stops(self, exporter, session, out_dir):
        """Test cancellation stops the walk before any download."""
        from srht_client.context import OperationCancelled, OperationContext

        job = make_job(8)
        serve_logs(session, [job])
        ctx = OperationContext()
        ctx.cancel()

        with pytest.raises(OperationCancelled):
            exporter(jobs_handler([job])).export(ctx, out_dir)
        assert session.calls == []
