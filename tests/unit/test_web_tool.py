import json

import pytest
import requests

from replay.core.errors import ErrorKind
from replay.core.registry import default_registry
from replay.tools import ToolErr, ToolOk
from replay.tools import web


class FakeResponse:
    def __init__(self, status=200, text="", headers=None, url="https://example.test/", reason="OK"):
        self.status_code = status
        self.text = text
        self.headers = headers or {}
        self.url = url
        self.reason = reason

    def json(self):
        return json.loads(self.text)

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error: {self.reason}", response=self)


@pytest.fixture
def sent(monkeypatch):
    """Records outgoing requests; tests set `sent.response` to control the reply."""
    class Recorder(list):
        response = FakeResponse()

    rec = Recorder()

    def fake_request(method, url, **kwargs):
        rec.append({"method": method, "url": url, **kwargs})
        if isinstance(rec.response, Exception):
            raise rec.response
        return rec.response

    monkeypatch.setattr(web.requests, "request", fake_request)
    return rec


@pytest.fixture(scope="module")
def tool():
    registry = default_registry()
    return lambda op, **params: registry.resolve("web", op).invoke(params)


def test_fetch_json_body_and_headers(tool, sent):
    sent.response = FakeResponse(text='{"ok": true}', headers={"Content-Type": "application/json"})
    out = tool("fetch_url", url="https://api.test/items", method="post", headers={"X-Token": "t"}, body={"a": 1})
    assert isinstance(out, ToolOk)
    assert out.value["status"] == 200
    assert out.value["statusText"] == "OK"
    assert json.loads(out.value["data"]) == {"ok": True}

    req = sent[0]
    assert req["method"] == "POST"
    assert req["json"] == {"a": 1}
    assert req["headers"]["X-Token"] == "t"
    assert "User-Agent" in req["headers"]
    assert req["timeout"] == 30.0


def test_get_never_sends_a_body(tool, sent):
    sent.response = FakeResponse(text="plain")
    out = tool("fetch_url", url="https://example.test/", body="ignored")
    assert out.value["data"] == "plain"
    assert "data" not in sent[0] and "json" not in sent[0]


def test_http_error_status_fails_once(tool, sent):
    sent.response = FakeResponse(status=503, reason="Service Unavailable")
    out = tool("fetch_url", url="https://example.test/down")
    assert isinstance(out, ToolErr)
    assert out.kind is ErrorKind.execution
    assert out.message.startswith("Failed to fetch https://example.test/down")
    assert len(sent) == 1


def test_network_error(tool, sent):
    sent.response = requests.ConnectionError("connection refused")
    out = tool("get_page_info", url="https://unreachable.test/")
    assert isinstance(out, ToolErr)
    assert "connection refused" in out.message


def test_parse_html_selects_text():
    out = default_registry().resolve("web", "parse_html").invoke({
        "html": "<ul><li class='x'>One</li><li class='x'> Two </li><li>Three</li></ul>",
        "selector": "li.x",
    })
    assert out.value["matches"] == 2
    assert out.value["data"] == ["One", "Two"]


def test_parse_html_bad_selector_is_validation_failure(tool):
    out = tool("parse_html", html="<p>x</p>", selector="p[")
    assert isinstance(out, ToolErr)
    assert out.kind is ErrorKind.validation


@pytest.mark.parametrize(
    "text, kind",
    [("null", "null"), ("true", "boolean"), ("3.5", "number"), ('"s"', "string"), ("[1]", "array"), ('{"a": 1}', "object")],
)
def test_parse_json_types(tool, text, kind):
    out = tool("parse_json", jsonString=text)
    assert out.value["type"] == kind


def test_parse_json_invalid(tool):
    out = tool("parse_json", jsonString="{nope")
    assert isinstance(out, ToolErr)
    assert out.message.startswith("Invalid JSON")


def test_submit_form_posts_fields(tool, sent):
    sent.response = FakeResponse(url="https://example.test/thanks")
    out = tool("submit_form", url="https://example.test/form", fields={"name": "Ada", "age": 36, "note": None})
    assert out.value["returnUrl"] == "https://example.test/thanks"
    assert sent[0]["method"] == "POST"
    assert sent[0]["data"] == {"name": "Ada", "age": "36", "note": ""}


def test_get_page_info(tool, sent):
    sent.response = FakeResponse(
        text="<html><head><title> Monthly Report </title>"
        "<meta name='Description' content='Figures for May'></head><body></body></html>"
    )
    info = tool("get_page_info", url="https://example.test/report").value
    assert info["title"] == "Monthly Report"
    assert info["description"] == "Figures for May"
    assert info["contentLength"] == len(sent.response.text)
