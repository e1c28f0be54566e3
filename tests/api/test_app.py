"""Tests for the jobs HTTP API."""

import pytest
from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from rclone_scheduler.api.app import UNSCHEDULED_LABEL, JobSummary, create_app, summarize
from rclone_scheduler.scheduler.job_executor import JobExecutor, TriggerResult
from rclone_scheduler.scheduler.registry import JobDefinition, JobRegistry
from rclone_scheduler.scheduler.state import SchedulerState


@pytest.fixture
def registry() -> JobRegistry:
    return JobRegistry.load([
        {"name": "Nightly", "schedule": "0 2 * * *", "command": "sync /data remote:data"},
        {"name": "Cleanup", "run": "find /tmp/backup -mtime +7 -delete"},
    ])


@pytest.fixture
def executor():
    mock = MagicMock(spec=JobExecutor)
    mock.trigger.return_value = TriggerResult.ACCEPTED
    return mock


@pytest.fixture
def client(registry, executor) -> TestClient:
    app = create_app(SchedulerState(registry=registry, executor=executor))
    return TestClient(app)


class TestSummarize:
    """Tests for the job display view."""

    def test_sync_job(self, registry) -> None:
        summary = summarize(registry.get(0))

        assert summary == JobSummary(
            index=0,
            name="Nightly",
            schedule="0 2 * * *",
            type="rclone",
            command="sync /data remote:data",
        )

    def test_shell_job_without_schedule(self, registry) -> None:
        summary = summarize(registry.get(1))

        assert summary.type == "run"
        assert summary.run == "find /tmp/backup -mtime +7 -delete"
        assert summary.command is None
        assert summary.schedule == UNSCHEDULED_LABEL

    def test_unknown_action(self) -> None:
        job = JobDefinition(index=0, name="Odd", action=object())  # type: ignore[arg-type]

        with pytest.raises(TypeError):
            summarize(job)


class TestListJobs:
    """Tests for GET /api/jobs."""

    def test_lists_jobs_in_order(self, client) -> None:
        response = client.get("/api/jobs")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/json")
        assert response.json() == [
            {
                "index": 0,
                "name": "Nightly",
                "schedule": "0 2 * * *",
                "command": "sync /data remote:data",
                "type": "rclone",
            },
            {
                "index": 1,
                "name": "Cleanup",
                "schedule": "(on demand / startup)",
                "run": "find /tmp/backup -mtime +7 -delete",
                "type": "run",
            },
        ]

    def test_empty_registry(self, executor) -> None:
        app = create_app(SchedulerState(registry=JobRegistry.load([]), executor=executor))

        response = TestClient(app).get("/api/jobs")

        assert response.status_code == 200
        assert response.json() == []

    def test_post_not_allowed(self, client) -> None:
        response = client.post("/api/jobs")

        assert response.status_code == 405


class TestTriggerJob:
    """Tests for POST /api/jobs/{index}[/run]."""

    @pytest.mark.parametrize("path", ["/api/jobs/1", "/api/jobs/1/run"])
    def test_trigger_accepted(self, client, executor, path: str) -> None:
        response = client.post(path)

        assert response.status_code == 202
        assert response.json() == {"status": "accepted"}
        executor.trigger.assert_called_once_with(1)

    def test_busy_is_still_accepted(self, client, executor, caplog) -> None:
        caplog.set_level("INFO")
        executor.trigger.return_value = TriggerResult.BUSY

        response = client.post("/api/jobs/0/run")

        assert response.status_code == 202
        assert response.json() == {"status": "accepted"}
        assert "already running" in caplog.text

    def test_repeated_triggers(self, client, executor) -> None:
        executor.trigger.side_effect = [TriggerResult.ACCEPTED, TriggerResult.BUSY]

        first = client.post("/api/jobs/0")
        second = client.post("/api/jobs/0")

        assert first.status_code == 202
        assert second.status_code == 202
        assert executor.trigger.call_count == 2

    @pytest.mark.parametrize("index", ["2", "5", "-1", "abc", "1.5", "+1", " 1", "1_0", "١"])
    def test_invalid_index(self, client, executor, index: str) -> None:
        response = client.post(f"/api/jobs/{index}/run")

        assert response.status_code == 400
        assert response.json() == {"detail": "invalid job index"}
        executor.trigger.assert_not_called()

    @pytest.mark.parametrize("index", ["1_0", "+10", "01_0"])
    def test_non_canonical_index_does_not_reach_a_job(self, executor, index: str) -> None:
        registry = JobRegistry.load([{"name": f"Job {i}", "run": "true"} for i in range(11)])
        client = TestClient(create_app(SchedulerState(registry=registry, executor=executor)))

        response = client.post(f"/api/jobs/{index}/run")

        assert response.status_code == 400
        executor.trigger.assert_not_called()

    def test_leading_zero_is_accepted(self, client, executor) -> None:
        response = client.post("/api/jobs/01/run")

        assert response.status_code == 202
        executor.trigger.assert_called_once_with(1)

    @pytest.mark.parametrize("path", ["/api/jobs/0", "/api/jobs/0/run"])
    def test_get_not_allowed(self, client, executor, path: str) -> None:
        response = client.get(path)

        assert response.status_code == 405
        executor.trigger.assert_not_called()


class TestDashboard:
    """Tests for the HTML page."""

    @pytest.mark.parametrize("path", ["/", "/jobs"])
    def test_serves_page(self, client, path: str) -> None:
        response = client.get(path)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert "/api/jobs" in response.text
        assert "No jobs configured." in response.text


class TestUnknownPaths:
    """Tests for routes that do not exist."""

    @pytest.mark.parametrize("path", ["/nope", "/docs", "/openapi.json", "/api/jobs/0/stop"])
    def test_not_found(self, client, path: str) -> None:
        response = client.get(path)

        assert response.status_code == 404

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/jobs/"),
            ("POST", "/api/jobs/0/"),
            ("POST", "/api/jobs/0/run/"),
            ("GET", "/jobs/"),
        ],
    )
    def test_trailing_slash_is_not_redirected(self, client, executor, method: str, path: str) -> None:
        response = client.request(method, path, follow_redirects=False)

        assert response.status_code == 404
        executor.trigger.assert_not_called()
