#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
    tests.test_api
    ~~~~~~~~~~~~~~

    The HTTP surface: routing, status codes and error bodies.

    :copyright: (c) 2025 by Authors.
    :license: see LICENSE for more details.
"""

import logging
import importlib
import pytest
from fastapi.testclient import TestClient
import pustak.app
from pustak import __version__
from pustak.app import create_app

API = "/v1/api"


@pytest.fixture
def client(session_factory):
    return TestClient(create_app(session_factory))

def add_title(client, **fields):
    body = {"title": "Godaan", "author": "Premchand", "total_copies": 1, **fields}
    response = client.post(f"{API}/titles", json=body)
    assert response.status_code == 201, response.text
    return response.json()

def add_member(client, name="Asha", **fields):
    response = client.post(f"{API}/members", json={"name": name, **fields})
    assert response.status_code == 201, response.text
    return response.json()


def test_home(client):
    response = client.get(f"{API}/")
    assert response.status_code == 200
    assert response.json() == {"name": "pustak", "version": __version__}

def test_title_lifecycle(client):
    title = add_title(client, total_copies=2)
    assert title["status"] == "available"
    assert title["available_copies"] == 2

    response = client.patch(f"{API}/titles/{title['id']}", json={"total_copies": 0})
    assert response.status_code == 200
    assert response.json()["status"] == "fully_issued"

    assert client.get(f"{API}/titles", params={"q": "God"}).json()[0]["id"] == title["id"]
    assert client.delete(f"{API}/titles/{title['id']}").status_code == 204
    response = client.get(f"{API}/titles/{title['id']}")
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "title_not_found"

def test_invalid_body_is_rejected(client):
    response = client.post(f"{API}/titles", json={"title": "Godaan"})
    assert response.status_code == 422

def test_issue_and_return(client):
    title = add_title(client)
    asha, ravi = add_member(client), add_member(client, "Ravi")

    response = client.post(f"{API}/loans", json={"title_id": title["id"], "member_id": asha["id"]})
    assert response.status_code == 201
    loan = response.json()
    assert loan["status"] == "issued"

    response = client.post(f"{API}/loans", json={"title_id": title["id"], "member_id": ravi["id"]})
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "no_copies_available"

    assert client.post(f"{API}/loans/{loan['id']}/return").json()["status"] == "returned"
    response = client.post(f"{API}/loans/{loan['id']}/return")
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "already_returned"

    history = client.get(f"{API}/members/{asha['id']}/loans").json()
    assert [l["id"] for l in history] == [loan["id"]]
    assert client.get(f"{API}/loans", params={"status": "returned"}).json()[0]["id"] == loan["id"]
    assert client.get(f"{API}/loans", params={"status": "lost"}).status_code == 400

def test_member_endpoints(client):
    member = add_member(client, email="asha@example.org", category="staff")
    assert member["category"] == "staff"
    response = client.post(f"{API}/members", json={"name": "A", "email": "asha@example.org"})
    assert response.status_code == 409

    assert client.post(f"{API}/members/{member['id']}/deactivate").json()["is_active"] is False
    assert client.post(f"{API}/members/{member['id']}/activate").json()["is_active"] is True
    assert client.delete(f"{API}/members/{member['id']}").json() == {
        "deleted": True, "deactivated": False}
    assert client.get(f"{API}/members/{member['id']}").status_code == 404

def test_import_upload(client):
    data = "Title,Author,Copies\nGodaan,Premchand,2\n,Nobody,1\n".encode("utf-8")
    response = client.post(f"{API}/titles/import",
                           files={"file": ("books.csv", data, "application/octet-stream")})
    assert response.status_code == 200
    report = response.json()
    assert report["inserted"] == 1
    assert report["skipped"] == 1
    assert report["errors"][0]["row"] == 3

    titles = client.get(f"{API}/titles").json()
    assert [(t["title"], t["total_copies"]) for t in titles] == [("Godaan", 2)]

def test_import_rejects_unknown_file_types(client):
    response = client.post(f"{API}/titles/import",
                           files={"file": ("books.pdf", b"%PDF-1.4", "application/pdf")})
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "validation_error"

def test_notifications(client):
    add_title(client)
    assert client.get(f"{API}/notifications/count").json() == {"count": 1}
    notification = client.get(f"{API}/notifications").json()[0]
    assert notification["type"] == "new_book"

    response = client.put(f"{API}/notifications/{notification['id']}/read")
    assert response.status_code == 200
    assert client.get(f"{API}/notifications", params={"unread_only": True}).json() == []
    assert client.put(f"{API}/notifications/read-all").json() == {"updated": 0}

    assert client.delete(f"{API}/notifications/{notification['id']}").status_code == 200
    assert client.delete(f"{API}/notifications/{notification['id']}").status_code == 404

def test_reminder(client):
    title, member = add_title(client), add_member(client)
    loan = client.post(f"{API}/loans",
                       json={"title_id": title["id"], "member_id": member["id"]}).json()
    response = client.post(f"{API}/loans/{loan['id']}/remind")
    assert response.status_code == 200
    assert response.json()["title"] == "Reminder sent: Godaan"
    assert client.post(f"{API}/loans/999/remind").status_code == 404

def test_activity_clearing_needs_a_viewer(client):
    add_title(client)
    assert len(client.get(f"{API}/activity").json()) == 1
    assert client.post(f"{API}/activity/clear").status_code == 400

    response = client.post(f"{API}/activity/clear", headers={"X-Viewer-Id": "desk-1"})
    assert response.status_code == 200
    assert client.get(f"{API}/activity", headers={"X-Viewer-Id": "desk-1"}).json() == []
    assert len(client.get(f"{API}/activity", headers={"X-Viewer-Id": "desk-2"}).json()) == 1

def test_stats(client):
    add_title(client, total_copies=3)
    add_member(client)
    response = client.get(f"{API}/stats")
    assert response.status_code == 200
    assert response.json() == {
        "total_titles": 1, "total_copies": 3, "issued_copies": 0,
        "available_copies": 3, "overdue_loans": 0,
        "active_members": 1, "total_members": 1,
    }

def test_logging_is_configured_on_startup_only(session_factory, monkeypatch):
    calls = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))
    importlib.reload(pustak.app)
    app = pustak.app.create_app(session_factory)
    assert calls == []

    with TestClient(app) as client:
        assert client.get(f"{API}/").status_code == 200
    assert len(calls) == 1
