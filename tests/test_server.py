from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from backend.maintso_vola.config import AppConfig, DashboardConfig
from backend.maintso_vola.schema import PROJECTS, USERS
from backend.maintso_vola.server import create_app

from .conftest import NOW


@pytest.fixture
def client(store, clock, roles) -> TestClient:
    config = AppConfig(dashboard=DashboardConfig(timezone="UTC"))
    return TestClient(create_app(store=store, config=config, clock=clock))


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_data_routes_unavailable_without_store():
    client = TestClient(create_app(config=AppConfig()))

    assert client.get("/health").status_code == 200
    response = client.get("/cultures")
    assert response.status_code == 503
    assert "MAINTSO_DATABASE_URL" in response.json()["detail"]


def test_dashboard_overview(client, store):
    store.insert(USERS, {"nom": "Rakoto", "created_at": NOW - timedelta(hours=3)})
    store.insert(PROJECTS, {"titre": "Rizière", "statut": "actif", "created_at": NOW - timedelta(days=1)})

    payload = client.get("/dashboard").json()

    assert payload["stats"]["userCount"] == 1
    assert payload["stats"]["activeProjects"] == 1
    assert [item["time"] for item in payload["recentActivities"]] == ["Il y a 3 heures", "Il y a 1 jour"]
    assert len(payload["monthlyRevenue"]) == 12


def test_dashboard_sections(client):
    assert client.get("/dashboard/stats").json()["newUserCount"] == 0
    assert client.get("/dashboard/revenue").json()[0] == {"name": "Jan", "value": 0.0}
    assert client.get("/dashboard/projects-by-type").json() == []
    assert client.get("/dashboard/activities").json() == []
    assert client.get("/dashboard/milestones").json() == []


def test_culture_routes(client):
    response = client.post("/cultures", json={"name": "Riz", "yield_per_ha": 4.5})
    assert response.status_code == 201
    culture_id = response.json()["id"]

    assert client.patch(f"/cultures/{culture_id}", json={"description": "Céréale"}).json() == {"ok": True}
    assert client.get(f"/cultures/{culture_id}").json()["description"] == "Céréale"
    assert [item["name"] for item in client.get("/cultures").json()] == ["Riz"]

    assert client.delete(f"/cultures/{culture_id}").status_code == 200
    assert client.get(f"/cultures/{culture_id}").status_code == 404
    assert client.delete(f"/cultures/{culture_id}").status_code == 400


def test_culture_validation(client):
    assert client.post("/cultures", json={"name": ""}).status_code == 422
    assert client.post("/cultures", json={"name": "Riz", "cost_per_ha": -1}).status_code == 422


def test_project_routes(client):
    riz = client.post("/cultures", json={"name": "Riz"}).json()["id"]
    mais = client.post("/cultures", json={"name": "Maïs"}).json()["id"]

    response = client.post(
        "/projects",
        json={"title": "Rizière Nord", "start_date": "2024-07-01", "budget_total": 800, "culture_ids": [riz]},
    )
    assert response.status_code == 201
    project = response.json()
    assert project["status"] == "planifié"
    assert project["start_date"] == "2024-07-01"

    project_id = project["id"]
    assert [link["culture_name"] for link in client.get(f"/projects/{project_id}/cultures").json()] == ["Riz"]

    assert client.put(f"/projects/{project_id}/cultures", json={"culture_ids": [mais]}).status_code == 200
    assert [link["culture_name"] for link in client.get(f"/projects/{project_id}/cultures").json()] == ["Maïs"]

    assert client.patch(f"/projects/{project_id}", json={"status": "en cours"}).status_code == 200
    assert client.get("/projects/stats/status").json() == {"planifié": 0, "en cours": 1, "terminé": 0, "annulé": 0}
    assert [item["title"] for item in client.get("/projects").json()] == ["Rizière Nord"]

    assert client.delete(f"/projects/{project_id}").json() == {"ok": True}
    assert client.get(f"/projects/{project_id}").status_code == 404


def test_user_routes(client):
    response = client.post("/users", json={"name": "Rakoto", "email": "r@example.mg", "role": "admin"})
    assert response.status_code == 201
    user = response.json()
    assert (user["role"], user["status"]) == ("admin", "en_attente")

    assert client.patch(f"/users/{user['id']}", json={"status": "actif"}).status_code == 200
    assert client.get(f"/users/{user['id']}").json()["status"] == "actif"
    assert len(client.get("/users").json()) == 1

    assert client.post("/users", json={"name": "Rabe", "email": "x@example.mg", "role": "pirate"}).status_code == 422
    assert client.patch("/users/missing", json={"status": "actif"}).status_code == 400

    assert client.delete(f"/users/{user['id']}").status_code == 200
    assert client.get(f"/users/{user['id']}").status_code == 404


def test_finance_routes(client, store):
    project_id = client.post("/projects", json={"title": "Vanille", "budget_total": 1000}).json()["id"]
    cost_id = store.insert(
        "cout_jalon_projet", {"id_projet": project_id, "montant_total": 300.0, "statut_paiement": "Non engagé"}
    )[0]["id_cout_projet"]

    response = client.post("/payments", json={"cost_id": cost_id, "amount": 100, "payment_date": "2024-06-01"})
    assert response.status_code == 201

    costs = client.get(f"/projects/{project_id}/costs").json()
    assert costs[0]["payment_status"] == "En cours"
    assert [item["amount"] for item in client.get(f"/costs/{cost_id}/payments").json()] == [100.0]
    assert client.get(f"/projects/{project_id}/finance").json() == {
        "totalBudget": 1000.0,
        "totalCommitted": 300.0,
        "totalPaid": 100.0,
        "remaining": 900.0,
    }

    assert client.post("/payments", json={"cost_id": cost_id, "amount": 0, "payment_date": "2024-06-01"}).status_code == 422
