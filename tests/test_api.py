import json
import httpx
import pytest
from src.api.services.runner import RunnerService
from conftest import API, auth_headers

@pytest.mark.asyncio
async def test_health_check(client):
    """测试健康检查接口"""
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["code"] == 200
    assert data["data"]["status"] == "ok"

@pytest.mark.asyncio
async def test_project_lifecycle(client, owner_headers):
    response = await client.post(f"{API}/projects", json={"name": "Billing"}, headers=owner_headers)
    assert response.status_code == 200
    project_id = response.json()["data"]["id"]

    response = await client.post(
        f"{API}/projects/{project_id}/test-cases",
        json={"name": "Pay", "url": "https://pay.example.com", "prompt": "pay an invoice"},
        headers=owner_headers,
    )
    assert response.status_code == 200
    assert response.json()["data"]["projectId"] == project_id

    response = await client.get(f"{API}/projects/{project_id}", headers=owner_headers)
    assert response.json()["data"]["name"] == "Billing"
    assert response.json()["data"]["testCaseCount"] == 1

    response = await client.get(f"{API}/projects", headers=owner_headers)
    assert [p["name"] for p in response.json()["data"]] == ["Billing"]

@pytest.mark.asyncio
async def test_project_forbidden_for_other_user(client, project, stranger):
    response = await client.get(f"{API}/projects/{project.id}", headers=auth_headers(sub=stranger.auth_id))

    assert response.status_code == 403

@pytest.mark.asyncio
async def test_create_test_case_requires_name(client, project, owner_headers):
    response = await client.post(
        f"{API}/projects/{project.id}/test-cases",
        json={"url": "https://x", "prompt": "p"},
        headers=owner_headers,
    )

    assert response.status_code == 422

@pytest.mark.asyncio
async def test_builder_test_case_round_trip(client, project, owner_headers):
    """builder 模式的用例保存后重新读取，模式一致"""
    body = {
        "name": "Chat",
        "url": "",
        "prompt": "",
        "steps": [
            {"id": "1", "target": "browser_1", "action": "send hello"},
            {"id": "2", "target": "browser_2", "action": "expect hello"},
        ],
        "browserConfig": {
            "browser_1": {"url": "https://chat.example.com", "username": "alice"},
            "browser_2": {"url": "https://chat.example.com", "username": "bob"},
        },
    }
    response = await client.post(f"{API}/projects/{project.id}/test-cases", json=body, headers=owner_headers)
    test_case_id = response.json()["data"]["id"]

    response = await client.get(f"{API}/test-cases/{test_case_id}", headers=owner_headers)
    data = response.json()["data"]
    assert data["mode"] == "builder"
    assert [s["target"] for s in data["steps"]] == ["browser_1", "browser_2"]
    assert data["browserConfig"]["browser_2"]["username"] == "bob"

@pytest.mark.asyncio
async def test_update_test_case(client, test_case, owner_headers):
    response = await client.put(
        f"{API}/test-cases/{test_case.id}",
        json={"name": "Login v2", "prompt": "log in and log out"},
        headers=owner_headers,
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["name"] == "Login v2"
    assert data["prompt"] == "log in and log out"
    assert data["url"] == "https://shop.example.com"

@pytest.mark.asyncio
async def test_get_test_case_not_found(client, owner_headers):
    response = await client.get(f"{API}/test-cases/missing", headers=owner_headers)

    assert response.status_code == 404

@pytest.mark.asyncio
async def test_record_and_list_runs(client, test_case, owner_headers):
    outcome = {
        "status": "PASS",
        "events": [
            {"type": "log", "data": {"message": "step1", "level": "info"}, "timestamp": 1},
            {"type": "screenshot", "data": {"src": "data:image/png;base64,AA", "label": "done"}, "timestamp": 2},
        ],
        "testConfig": {"name": "Login", "url": "https://shop.example.com", "prompt": "log in"},
    }
    response = await client.post(f"{API}/test-cases/{test_case.id}/run", json=outcome, headers=owner_headers)
    assert response.status_code == 200

    await client.post(
        f"{API}/test-cases/{test_case.id}/run",
        json={"status": "CANCELLED", "events": [], "error": "Test was cancelled by user",
              "testConfig": outcome["testConfig"]},
        headers=owner_headers,
    )

    response = await client.get(f"{API}/test-cases/{test_case.id}/runs", headers=owner_headers)
    runs = response.json()["data"]
    assert len(runs) == 2
    statuses = {run["status"] for run in runs}
    assert statuses == {"PASS", "CANCELLED"}
    passed = next(run for run in runs if run["status"] == "PASS")
    assert [e["type"] for e in passed["events"]] == ["log", "screenshot"]
    assert passed["testConfig"]["prompt"] == "log in"

    response = await client.get(f"{API}/test-cases/{test_case.id}", headers=owner_headers)
    assert response.json()["data"]["status"] == "CANCELLED"

@pytest.mark.asyncio
async def test_file_upload_download_delete(client, test_case, owner_headers, upload_dir):
    response = await client.post(
        f"{API}/test-cases/{test_case.id}/files",
        files={"file": ("notes.txt", b"remember the milk", "text/plain")},
        headers=owner_headers,
    )
    assert response.status_code == 200
    info = response.json()["data"]
    assert info["filename"] == "notes.txt"
    assert info["size"] == 17
    assert info["storedName"].endswith(".txt")
    assert (upload_dir / test_case.id / info["storedName"]).exists()

    response = await client.get(f"{API}/test-cases/{test_case.id}/files/{info['id']}", headers=owner_headers)
    assert response.status_code == 200
    assert response.content == b"remember the milk"

    response = await client.delete(f"{API}/test-cases/{test_case.id}/files/{info['id']}", headers=owner_headers)
    assert response.status_code == 200
    assert not (upload_dir / test_case.id / info["storedName"]).exists()

@pytest.mark.asyncio
async def test_file_upload_rejects_extension(client, test_case, owner_headers):
    response = await client.post(
        f"{API}/test-cases/{test_case.id}/files",
        files={"file": ("run.exe", b"MZ", "application/octet-stream")},
        headers=owner_headers,
    )

    assert response.status_code == 400

@pytest.mark.asyncio
async def test_delete_test_case_removes_uploads(client, test_case, owner_headers, upload_dir):
    await client.post(
        f"{API}/test-cases/{test_case.id}/files",
        files={"file": ("a.png", b"png", "image/png")},
        headers=owner_headers,
    )
    assert (upload_dir / test_case.id).exists()

    response = await client.delete(f"{API}/test-cases/{test_case.id}", headers=owner_headers)

    assert response.status_code == 200
    assert not (upload_dir / test_case.id).exists()
    response = await client.get(f"{API}/test-cases/{test_case.id}", headers=owner_headers)
    assert response.status_code == 404

@pytest.fixture
def runner_transport(monkeypatch):
    """替换执行器的传输层，记录收到的请求"""
    received = []

    def use(handler):
        def recording_handler(request: httpx.Request):
            received.append(json.loads(request.content))
            return handler(request)
        monkeypatch.setattr(RunnerService, "transport", httpx.MockTransport(recording_handler))
        return received

    return use

@pytest.mark.asyncio
async def test_run_test_proxies_event_stream(client, owner_headers, runner_transport):
    body = (
        'data: {"type":"log","message":"step1","level":"info"}\n\n'
        'data: {"type":"status","status":"PASS"}\n\n'
    )
    received = runner_transport(lambda request: httpx.Response(
        200, content=body.encode(), headers={"content-type": "text/event-stream"}
    ))

    response = await client.post(
        f"{API}/run-test",
        json={"name": "Login", "url": "https://x", "prompt": "log in"},
        headers=owner_headers,
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.text == body
    assert received == [{"name": "Login", "url": "https://x", "prompt": "log in"}]

@pytest.mark.asyncio
async def test_run_test_reports_runner_failure(client, owner_headers, runner_transport):
    runner_transport(lambda request: httpx.Response(503))

    response = await client.post(f"{API}/run-test", json={"url": "https://x", "prompt": "p"}, headers=owner_headers)

    assert response.status_code == 200
    record = json.loads(response.text.strip()[len("data: "):])
    assert record["type"] == "status"
    assert record["status"] == "FAIL"
    assert "503" in record["error"]

@pytest.mark.asyncio
async def test_run_test_requires_auth(client):
    response = await client.post(f"{API}/run-test", json={"url": "https://x", "prompt": "p"})

    assert response.status_code == 401
