"""Tests for TraceSession and synthetic request building."""

from __future__ import annotations

import pytest

from devtoolbox.errors import IntrospectionError, TraceSessionActive
from devtoolbox.runtime.base import SyntheticRequest
from devtoolbox.runtime.memory import InMemoryApplication
from devtoolbox.tracing import TraceSession, build_request, session_active


def test_session_captures_queries_in_order(app, database):
    """Queries executed during dispatch are recorded."""
    with TraceSession(app) as session:
        assert session_active()
        assert database.listener_count == 1
        response = session.dispatch(SyntheticRequest(method="GET", path="/users/3"))
    assert response.status_code == 200
    assert [q.sql for q in session.queries][:2] == ["SELECT * FROM users WHERE id = ?"] * 2
    assert len(session.queries) == 6
    assert session.elapsed_ms >= 0
    assert database.listener_count == 0
    assert not session_active()


def test_session_unsubscribes_when_dispatch_raises(app, database):
    """A failing request still releases the listener and the lock."""
    with pytest.raises(RuntimeError, match="boom"):
        with TraceSession(app) as session:
            session.dispatch(SyntheticRequest(method="GET", path="/broken"))
    assert len(session.queries) == 1
    assert session.response is None
    assert database.listener_count == 0
    assert not session_active()


def test_queries_outside_session_are_not_captured(app, database):
    with TraceSession(app) as session:
        pass
    database.select("SELECT 1")
    assert session.queries == []


def test_nested_session_rejected(app, database):
    """Only one session may be open at a time."""
    with TraceSession(app):
        with pytest.raises(TraceSessionActive):
            with TraceSession(app):
                pass
        assert database.listener_count == 1
    assert database.listener_count == 0
    assert not session_active()


def test_session_requires_database(tmp_path):
    """An application without a database cannot be traced."""
    with pytest.raises(IntrospectionError):
        with TraceSession(InMemoryApplication(base_path=tmp_path)):
            pass
    assert not session_active()


def test_build_request_from_route(app):
    """Route parameters fill the path; the query string stays empty."""
    request, target = build_request(app, {"route": "users.show", "parameters": {"id": 7}})
    assert target == "users.show"
    assert request.path == "/users/7"
    assert request.method == "GET"
    assert request.query == {}


def test_build_request_from_url_uses_parameters_as_query(app):
    request, target = build_request(app, {"url": "users", "parameters": {"page": 2}})
    assert target == "users"
    assert request.path == "/users"
    assert request.query == {"page": 2}


def test_build_request_post_uses_parameters_as_data(app):
    """Non-GET requests send parameters as the body when no data is given."""
    request, _ = build_request(app, {"url": "/posts", "method": "post", "parameters": {"title": "x"}})
    assert request.method == "POST"
    assert request.query == {}
    assert request.data == {"title": "x"}


def test_build_request_without_target(app):
    assert build_request(app, {}) is None


def test_build_request_unknown_route(app):
    with pytest.raises(IntrospectionError, match="not found"):
        build_request(app, {"route": "missing.route"})
