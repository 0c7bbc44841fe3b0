"""Tests for the JSON API and health endpoint."""
from fakes import LISTING_URL


def _submit(client, **payload):
    payload.setdefault("url", LISTING_URL)
    return client.post("/api/v1/optimize", json=payload)


def _finished(app, job_id):
    return app.extensions["listing_optimizer"].wait(job_id, timeout=10)


def test_optimize_accepts_job(app, client):
    resp = _submit(client)

    assert resp.status_code == 202
    job_id = resp.get_json()["job_id"]
    _finished(app, job_id)

    resp = client.get(f"/api/v1/job/{job_id}")
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["status"] == "completed"
    assert data["progress"] == {"total": 3, "completed": 3, "failed": 0}
    assert data["listing_url"] == LISTING_URL
    assert len(data["image_pairs"]) == 3
    assert data["image_pairs"][0]["optimized"]["file_name"] == "bedroom_1.jpg"


def test_optimize_validation_error(client):
    resp = _submit(client, url="https://example.com/not-a-listing")

    assert resp.status_code == 400
    data = resp.get_json()
    assert data["error"] is True
    assert data["code"] == "VALIDATION_ERROR"


def test_optimize_requires_url(client):
    resp = client.post("/api/v1/optimize", json={})
    assert resp.status_code == 400


def test_optimize_rejects_bad_max_images(client):
    resp = _submit(client, max_images=50)
    assert resp.status_code == 400


def test_unknown_job_is_404(client):
    resp = client.get("/api/v1/job/does-not-exist")

    assert resp.status_code == 404
    assert resp.get_json()["code"] == "NOT_FOUND"


def test_cancel_finished_job(app, client):
    job_id = _submit(client).get_json()["job_id"]
    _finished(app, job_id)

    resp = client.post(f"/api/v1/job/{job_id}/cancel")

    assert resp.status_code == 200
    assert resp.get_json() == {"cancelled": False}


def test_cancel_unknown_job_is_404(client):
    assert client.post("/api/v1/job/missing/cancel").status_code == 404


def test_download_optimized_image(app, client):
    job_id = _submit(client).get_json()["job_id"]
    snapshot = _finished(app, job_id)
    pair = snapshot.image_pairs[0]

    resp = client.get(f"/api/v1/download/{job_id}/{pair.original.id}")

    assert resp.status_code == 200
    assert resp.mimetype == "image/jpeg"
    assert resp.data == pair.optimized.optimized_content
    assert "bedroom_1.jpg" in resp.headers["Content-Disposition"]


def test_download_unknown_image_is_404(app, client):
    job_id = _submit(client).get_json()["job_id"]
    _finished(app, job_id)

    assert client.get(f"/api/v1/download/{job_id}/nope").status_code == 404


def test_health_reports_job_counts(app, client):
    job_id = _submit(client).get_json()["job_id"]
    _finished(app, job_id)

    resp = client.get("/health")

    assert resp.status_code == 200
    data = resp.get_json()
    assert data["status"] == "ok"
    assert data["jobs"]["total_jobs"] == 1
    assert data["jobs"]["by_status"] == {"completed": 1}


def test_health_does_not_leak_internal_errors(app, client, monkeypatch):
    def boom():
        raise RuntimeError("internal secret leaked")

    monkeypatch.setattr(app.extensions["listing_optimizer"], "stats", boom)

    resp = client.get("/health")
    assert resp.status_code == 503
    data = resp.get_json()
    assert data["jobs"] == "error"
    assert "secret" not in str(data).lower()


def test_optimize_rejects_non_object_body(app, client):
    resp = client.post("/api/v1/optimize", json=[LISTING_URL])

    assert resp.status_code == 400
    assert resp.get_json()["code"] == "VALIDATION_ERROR"
    assert app.extensions["listing_optimizer"].stats()["total_jobs"] == 0
