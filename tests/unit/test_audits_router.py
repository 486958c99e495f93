"""Tests for the audit run endpoints."""

import pytest
from httpx import AsyncClient

from tests.fixtures.audit_service import SITE_URL, make_result
from worker.audit.models import AuditType

PAGES = [f"{SITE_URL}/", f"{SITE_URL}/pricing", f"{SITE_URL}/blog"]


async def start_site_audit(client: AsyncClient, **extra) -> dict:
    body = {"site_url": SITE_URL, "mode": "site", "audit_types": ["seo"], **extra}
    response = await client.post("/v1/audits/start", json=body)
    assert response.status_code == 202, response.text
    return response.json()["data"]


class TestStartAndControl:
    """Tests for start, stop and resume."""

    @pytest.mark.asyncio
    async def test_start_site_audit(self, client: AsyncClient, audit_service):
        progress = await start_site_audit(client)
        assert progress["total"] == 3
        assert progress["audit_types"] == ["seo"]

        await audit_service.site(SITE_URL).coordinator.wait()

        response = await client.get("/v1/audits/progress", params={"site_url": SITE_URL})
        data = response.json()["data"]
        assert data["done"] == 3
        assert data["percent"] == 100
        assert data["running"] is False

    @pytest.mark.asyncio
    async def test_start_keyword_audit(self, client: AsyncClient, audit_service, fake_client):
        response = await client.post(
            "/v1/audits/start",
            json={"site_url": SITE_URL, "mode": "keyword", "keyword": "crm"},
        )
        assert response.status_code == 202
        await audit_service.site(SITE_URL).coordinator.wait()
        assert fake_client.requested_urls() == [f"{SITE_URL}/crm", f"{SITE_URL}/pricing"]

    @pytest.mark.asyncio
    async def test_start_while_running_is_conflict(
        self, client: AsyncClient, audit_service, fake_client
    ):
        fake_client.delay = 0.05
        await start_site_audit(client)

        response = await client.post(
            "/v1/audits/start",
            json={"site_url": SITE_URL, "mode": "site"},
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "run_in_progress"
        await audit_service.site(SITE_URL).coordinator.wait()

    @pytest.mark.asyncio
    async def test_no_targets_is_422(self, client: AsyncClient):
        response = await client.post(
            "/v1/audits/start",
            json={"site_url": SITE_URL, "mode": "keyword", "keyword": "nothing ranks"},
        )
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "no_targets_found"

    @pytest.mark.asyncio
    async def test_missing_mode_parameter_is_422(self, client: AsyncClient):
        response = await client.post(
            "/v1/audits/start",
            json={"site_url": SITE_URL, "mode": "page"},
        )
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "validation_error"

    @pytest.mark.asyncio
    async def test_unknown_audit_types_rejected(self, client: AsyncClient):
        response = await client.post(
            "/v1/audits/start",
            json={"site_url": SITE_URL, "mode": "site", "audit_types": ["vibes"]},
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_resume_unknown_site(self, client: AsyncClient):
        response = await client.post("/v1/audits/resume", json={"site_url": "https://new.test"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_resume_finished_run_is_conflict(self, client: AsyncClient, audit_service):
        await start_site_audit(client)
        await audit_service.site(SITE_URL).coordinator.wait()

        response = await client.post("/v1/audits/resume", json={"site_url": SITE_URL})
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_stop_idle_site(self, client: AsyncClient, audit_service):
        audit_service.site(SITE_URL)
        response = await client.post("/v1/audits/stop", json={"site_url": f"{SITE_URL}/"})
        assert response.status_code == 200
        assert response.json()["data"]["aborted"] is False


class TestResults:
    """Tests for results, runs and summary."""

    @pytest.mark.asyncio
    async def test_results_paging(self, client: AsyncClient, audit_service):
        await start_site_audit(client)
        await audit_service.site(SITE_URL).coordinator.wait()

        response = await client.get(
            "/v1/audits/results", params={"site_url": SITE_URL, "offset": 1}
        )

        body = response.json()
        assert [r["index"] for r in body["data"]] == [1, 2]
        assert body["meta"] == {"offset": 1, "next_offset": 3, "total": 3}
        rec = body["data"][0]["recommendations"][0]
        assert rec["key"] == f"seo::{PAGES[1]}::0"
        assert rec["state"] == "new"

    @pytest.mark.asyncio
    async def test_results_filter_by_type(self, client: AsyncClient, audit_service):
        log = audit_service.site(SITE_URL).coordinator.log
        log.append(make_result(PAGES[0], AuditType.SEO))
        log.append(make_result(PAGES[0], AuditType.CONTENT))

        response = await client.get(
            "/v1/audits/results", params={"site_url": SITE_URL, "audit_type": "content"}
        )

        body = response.json()
        assert [r["index"] for r in body["data"]] == [1]
        assert body["meta"]["next_offset"] == 2

    @pytest.mark.asyncio
    async def test_runs_and_summary(self, client: AsyncClient, audit_service):
        log = audit_service.site(SITE_URL).coordinator.log
        log.append(make_result(PAGES[0], score=50, minutes=0))
        log.append(make_result(PAGES[0], score=90, minutes=60))
        log.append(make_result(PAGES[1], score=70, minutes=61))

        runs = (await client.get("/v1/audits/runs", params={"site_url": SITE_URL})).json()
        assert [r["result_count"] for r in runs["data"]] == [2, 1]

        latest = await client.get("/v1/audits/summary", params={"site_url": SITE_URL})
        assert latest.json()["data"]["overall_score"] == 80
        assert latest.json()["data"]["run"]["index"] == 0

        older = await client.get(
            "/v1/audits/summary", params={"site_url": SITE_URL, "run_index": 1}
        )
        assert older.json()["data"]["overall_score"] == 50

        everything = await client.get(
            "/v1/audits/summary", params={"site_url": SITE_URL, "all_runs": True}
        )
        assert everything.json()["data"]["overall_score"] == 70
        assert everything.json()["data"]["run"] is None

        missing = await client.get(
            "/v1/audits/summary", params={"site_url": SITE_URL, "run_index": 7}
        )
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_run(self, client: AsyncClient, audit_service, fake_client):
        log = audit_service.site(SITE_URL).coordinator.log
        log.append(make_result(PAGES[0], score=50, minutes=0))
        log.append(make_result(PAGES[1], score=90, minutes=60))

        response = await client.delete("/v1/audits/runs/0", params={"site_url": SITE_URL})

        assert response.status_code == 200
        assert response.json()["data"] == {"deleted": 1, "failed": 0}
        assert fake_client.requested_urls("delete_page_audit") == [PAGES[1]]

        runs = (await client.get("/v1/audits/runs", params={"site_url": SITE_URL})).json()
        assert [r["result_count"] for r in runs["data"]] == [1]

        results = await client.get("/v1/audits/results", params={"site_url": SITE_URL})
        assert [r["index"] for r in results.json()["data"]] == [0]
        assert results.json()["meta"]["total"] == 2

    @pytest.mark.asyncio
    async def test_delete_unknown_run(self, client: AsyncClient, audit_service):
        audit_service.site(SITE_URL)
        response = await client.delete("/v1/audits/runs/3", params={"site_url": SITE_URL})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_summary_bucket_filter(self, client: AsyncClient, audit_service):
        log = audit_service.site(SITE_URL).coordinator.log
        log.append(make_result(PAGES[0], score=85))
        log.append(make_result(PAGES[1], score=30))

        response = await client.get(
            "/v1/audits/summary", params={"site_url": SITE_URL, "bucket": "poor"}
        )

        data = response.json()["data"]
        assert [p["page_url"] for p in data["pages"]] == [PAGES[1]]
        assert data["buckets"] == {"poor": 1, "needs-work": 0, "good": 0}

    @pytest.mark.asyncio
    async def test_load_history(self, client: AsyncClient, fake_client):
        fake_client.history = {AuditType.SEO: [make_result(PAGES[0]), make_result(PAGES[1])]}

        response = await client.post(
            "/v1/audits/history/load",
            json={"site_url": SITE_URL, "audit_types": ["seo"]},
        )

        data = response.json()["data"]
        assert data["loaded"] == 2
        assert data["progress"]["site_url"] == SITE_URL


class TestStream:
    """Tests for the SSE result stream."""

    @pytest.mark.asyncio
    async def test_stream_replays_then_completes(self, client: AsyncClient, audit_service):
        await start_site_audit(client)
        await audit_service.site(SITE_URL).coordinator.wait()

        response = await client.get("/v1/audits/stream", params={"site_url": SITE_URL})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        body = response.text
        assert body.count("event: result") == 3
        assert body.rstrip().split("\n\n")[-1].startswith("event: complete")

    @pytest.mark.asyncio
    async def test_stream_from_offset(self, client: AsyncClient, audit_service):
        await start_site_audit(client)
        await audit_service.site(SITE_URL).coordinator.wait()

        response = await client.get(
            "/v1/audits/stream", params={"site_url": SITE_URL, "offset": 2}
        )

        assert response.text.count("event: result") == 1
        assert '"index":2' in response.text
