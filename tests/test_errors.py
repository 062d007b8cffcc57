"""Blueprint error handlers — domain exceptions to JSON, HTTP errors untouched."""

import pytest
from flask import Blueprint, Flask, abort

from qagate.core.exceptions import NotFoundError
from qagate.utils.errors import E, register_error_handlers


@pytest.fixture()
def error_client():
    bp = Blueprint("errors_under_test", __name__)
    register_error_handlers(bp)

    @bp.route("/missing-release")
    def missing_release():
        raise NotFoundError("Release", 42)

    @bp.route("/gone")
    def gone():
        abort(410)

    @bp.route("/boom")
    def boom():
        raise RuntimeError("boom")

    app = Flask(__name__)
    app.register_blueprint(bp)
    return app.test_client()


def test_domain_error_rendered(error_client):
    r = error_client.get("/missing-release")
    assert r.status_code == 404
    body = r.get_json()
    assert body["code"] == E.NOT_FOUND
    assert body["details"] == {"resource": "Release", "resource_id": 42}


def test_http_exception_keeps_status(error_client):
    r = error_client.get("/gone")
    assert r.status_code == 410


def test_unexpected_error_is_internal(error_client):
    r = error_client.get("/boom")
    assert r.status_code == 500
    assert r.get_json()["code"] == E.INTERNAL
