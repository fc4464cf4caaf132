import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from conftest import MENU_ITEMS, FakeBackend, form_payload, menu_payload
from poster_studio.main import app, get_credit_gate, get_pipeline, get_request_gate
from poster_studio.middlewares import BodyLimitMiddleware
from poster_studio.services.credits import InMemoryCreditLedger
from poster_studio.services.pipeline import ActiveRequestGate


class SupersedingGate(ActiveRequestGate):
    """Registers a newer request for the same session right after ``begin``."""

    def begin(self, scope: str) -> int:
        token = super().begin(scope)
        super().begin(scope)
        return token


@pytest.fixture
def ledger() -> InMemoryCreditLedger:
    return InMemoryCreditLedger(balance=10)


@pytest.fixture
def client(make_pipeline, backend, ledger):
    pipeline = make_pipeline(backend)
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    app.dependency_overrides[get_credit_gate] = lambda: ledger
    app.dependency_overrides[get_request_gate] = ActiveRequestGate
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _request(**overrides):
    body = {"form": form_payload("restaurant"), "idempotency_key": "req-1"}
    body.update(overrides)
    return body


def test_health(client) -> None:
    assert client.get("/health").json() == {"ok": True}
    assert client.head("/").status_code == 200


def test_create_posters_returns_designs_and_usage(client, ledger) -> None:
    response = client.post("/api/posters", json=_request(variants=2, session_id="s-1"))

    assert response.status_code == 200
    data = response.json()
    assert [result["index"] for result in data["results"]] == [0, 1]
    for result in data["results"]:
        assert result["status"] == "complete"
        assert result["error"] is None
        design = result["design"]
        assert design["image_data_url"].startswith("data:image/jpeg;base64,")
        assert (design["width"], design["height"]) == (1080, 1080)
    assert {item["route"] for item in data["usage"]} == {"design-brief", "poster"}
    assert len(data["usage"]) == 4
    assert ledger.balance == 8


def test_invalid_form_is_422_with_issues(client, backend, ledger) -> None:
    form = form_payload("restaurant")
    del form["new_price"]

    response = client.post("/api/posters", json=_request(form=form))

    assert response.status_code == 422
    issues = response.json()["detail"]["issues"]
    assert any("new_price" in issue for issue in issues)
    assert backend.image_calls == []
    assert ledger.balance == 10


def test_invalid_brand_kit_is_422(client) -> None:
    response = client.post("/api/posters", json=_request(brand_kit={"palette": {"primary": "blue"}}))

    assert response.status_code == 422
    assert response.json()["detail"]["issues"][0].startswith("brand_kit.")


def test_too_many_variants_rejected(client) -> None:
    assert client.post("/api/posters", json=_request(variants=5)).status_code == 422


def test_insufficient_credits_is_402_and_refunds_partial_reservations(client, backend, ledger) -> None:
    ledger.balance = 1

    response = client.post("/api/posters", json=_request(variants=2))

    assert response.status_code == 402
    assert ledger.balance == 1
    assert backend.image_calls == []


def test_failed_variant_releases_its_credit(make_pipeline, ledger) -> None:
    pipeline = make_pipeline(FakeBackend(images=[RuntimeError("invalid request")]))
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    app.dependency_overrides[get_credit_gate] = lambda: ledger
    try:
        response = TestClient(app).post("/api/posters", json=_request(variants=2))
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    statuses = sorted(result["status"] for result in response.json()["results"])
    assert statuses == ["complete", "error"]
    assert ledger.balance == 9


def test_superseded_request_is_409(client, backend) -> None:
    app.dependency_overrides[get_request_gate] = SupersedingGate

    response = client.post("/api/posters", json=_request(session_id="s-1"))

    assert response.status_code == 409
    assert len(backend.image_calls) == 1


def _menu_request(**overrides):
    body = {"form": menu_payload(), "idempotency_key": "menu-1"}
    body.update(overrides)
    return body


def test_create_menu_returns_a4_design_and_charges_menu_cost(client, ledger) -> None:
    response = client.post("/api/menus", json=_menu_request(session_id="s-1"))

    assert response.status_code == 200
    data = response.json()
    assert data["result"]["status"] == "complete"
    design = data["result"]["design"]
    assert design["format"] == "a4-menu"
    assert (design["width"], design["height"]) == (1240, 1754)
    assert [item["route"] for item in data["usage"]] == ["design-brief", "menu"]
    assert ledger.balance == 8


def test_menu_with_too_few_items_is_422(client, backend, ledger) -> None:
    response = client.post("/api/menus", json=_menu_request(form=menu_payload(items=MENU_ITEMS[:1])))

    assert response.status_code == 422
    assert any(issue.startswith("items") for issue in response.json()["detail"]["issues"])
    assert backend.text_calls == []
    assert ledger.balance == 10


def test_menu_without_enough_credits_is_402_and_rolls_back(client, backend, ledger) -> None:
    ledger.balance = 1

    response = client.post("/api/menus", json=_menu_request())

    assert response.status_code == 402
    assert ledger.balance == 1
    assert backend.image_calls == []


def test_failed_menu_releases_every_credit(make_pipeline, ledger) -> None:
    pipeline = make_pipeline(FakeBackend(images=[RuntimeError("invalid request")]))
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    app.dependency_overrides[get_credit_gate] = lambda: ledger
    try:
        response = TestClient(app).post("/api/menus", json=_menu_request())
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert response.json()["result"]["status"] == "error"
    assert ledger.balance == 10


def test_superseded_menu_is_409(client, backend) -> None:
    app.dependency_overrides[get_request_gate] = SupersedingGate

    response = client.post("/api/menus", json=_menu_request(session_id="s-1"))

    assert response.status_code == 409
    assert len(backend.image_calls) == 1


def test_body_limit_rejects_large_api_payloads() -> None:
    small = FastAPI()
    small.add_middleware(BodyLimitMiddleware, max_body_bytes=64)

    @small.post("/api/echo")
    async def echo(payload: dict) -> dict:
        return payload

    @small.post("/upload")
    async def upload(payload: dict) -> dict:
        return {"size": len(payload["data"])}

    client = TestClient(small)

    ok = client.post("/api/echo", json={"a": 1})
    assert ok.status_code == 200
    assert ok.json() == {"a": 1}

    rejected = client.post("/api/echo", json={"data": "x" * 200})
    assert rejected.status_code == 413
    body = rejected.json()
    assert body["error"] == "REQUEST_BODY_TOO_LARGE"
    assert body["limit"] == 64

    assert client.post("/upload", json={"data": "x" * 200}).status_code == 200


def test_body_limit_can_be_disabled() -> None:
    small = FastAPI()
    small.add_middleware(BodyLimitMiddleware, max_body_bytes=0)

    @small.post("/api/echo")
    async def echo(payload: dict) -> dict:
        return {"size": len(payload["data"])}

    response = TestClient(small).post("/api/echo", json={"data": "x" * 5000})

    assert response.json() == {"size": 5000}
