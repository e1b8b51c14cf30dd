# replay/tools/web.py
from __future__ import annotations

"""Web tool
-----------
HTTP fetch/form submission via requests and HTML extraction via BeautifulSoup.
Every call is a single request: no retry adapter is mounted, so a failed
request is reported once and left to the step's error policy.
"""

import json
import re
from typing import Any, Optional

import requests
from bs4 import BeautifulSoup
from pydantic import Field
from soupsieve import SelectorSyntaxError

from replay.core.errors import ToolExecutionError, ToolValidationError
from replay.tools.base import ToolAdapter, ToolCategory, ToolOperation, ToolParams
from replay.utils.config import get_settings
from replay.utils.logger import get_logger
from replay.utils.timing import measure

log = get_logger(__name__)

_BODY_METHODS = {"POST", "PUT", "PATCH"}


# ---------- Parameter contracts ----------


class FetchUrlParams(ToolParams):
    url: str = Field(..., min_length=1, description="URL to fetch")
    method: str = Field(default="GET", description="GET, POST, etc.")
    headers: dict[str, Any] = Field(default_factory=dict, description="Request headers")
    body: Optional[Any] = Field(default=None, description="Request body (object is sent as JSON)")


class ParseHtmlParams(ToolParams):
    html: str = Field(..., min_length=1, description="HTML content")
    selector: str = Field(..., min_length=1, description="CSS selector")


class SubmitFormParams(ToolParams):
    url: str = Field(..., min_length=1, description="Form URL")
    fields: dict[str, Any] = Field(default_factory=dict, description="Form fields and values")


class ParseJsonParams(ToolParams):
    json_string: str = Field(..., min_length=1, description="JSON text to parse")


class PageInfoParams(ToolParams):
    url: str = Field(..., min_length=1, description="Page URL")


# ---------- Internals ----------


def _send(method: str, url: str, **kwargs) -> requests.Response:
    s = get_settings()
    headers = {"User-Agent": s.HTTP_USER_AGENT}
    headers.update({str(k): str(v) for k, v in (kwargs.pop("headers", None) or {}).items()})
    log.debug(f"Fetching {method} {url}")
    try:
        resp = requests.request(method, url, headers=headers, timeout=s.HTTP_TIMEOUT_SECONDS, **kwargs)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise ToolExecutionError(f"Failed to fetch {url}: {e}") from e
    return resp


def _body_text(resp: requests.Response) -> str:
    ctype = resp.headers.get("Content-Type", "")
    if "json" in ctype.lower():
        try:
            return json.dumps(resp.json(), indent=2, ensure_ascii=False)
        except ValueError:
            pass
    return resp.text


def _json_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


# ---------- Operations ----------


@measure("web.fetch_url", level="DEBUG")
def fetch_url(params: FetchUrlParams) -> dict:
    method = params.method.strip().upper() or "GET"
    kwargs: dict[str, Any] = {"headers": params.headers}
    if params.body is not None and method in _BODY_METHODS:
        if isinstance(params.body, (dict, list)):
            kwargs["json"] = params.body
        else:
            kwargs["data"] = str(params.body)

    resp = _send(method, params.url, **kwargs)
    return {
        "success": True,
        "url": params.url,
        "method": method,
        "status": resp.status_code,
        "statusText": resp.reason,
        "data": _body_text(resp),
        "headers": dict(resp.headers),
    }


@measure("web.parse_html", level="DEBUG")
def parse_html(params: ParseHtmlParams) -> dict:
    soup = BeautifulSoup(params.html, "html.parser")
    log.debug(f"Parsing HTML with selector: {params.selector}")
    try:
        elements = soup.select(params.selector)
    except SelectorSyntaxError as e:
        raise ToolValidationError(f"Invalid CSS selector {params.selector!r}: {e}") from e
    return {
        "success": True,
        "selector": params.selector,
        "matches": len(elements),
        "data": [el.get_text(" ", strip=True) for el in elements],
        "html": [str(el) for el in elements],
    }


@measure("web.submit_form", level="DEBUG")
def submit_form(params: SubmitFormParams) -> dict:
    log.debug(f"Submitting form to {params.url}")
    fields = {k: "" if v is None else str(v) for k, v in params.fields.items()}
    resp = _send("POST", params.url, data=fields)
    return {
        "success": True,
        "url": params.url,
        "status": resp.status_code,
        "returnUrl": resp.url,
    }


@measure("web.parse_json", level="DEBUG")
def parse_json(params: ParseJsonParams) -> dict:
    try:
        parsed = json.loads(params.json_string)
    except json.JSONDecodeError as e:
        raise ToolExecutionError(f"Invalid JSON: {e}") from e
    return {"success": True, "data": parsed, "type": _json_type(parsed)}


@measure("web.get_page_info", level="DEBUG")
def get_page_info(params: PageInfoParams) -> dict:
    resp = _send("GET", params.url)
    html = resp.text
    soup = BeautifulSoup(html, "html.parser")

    title = soup.title.get_text(strip=True) if soup.title else None
    meta = soup.find("meta", attrs={"name": re.compile(r"^description$", re.I)})
    description = meta.get("content") if meta else None

    log.debug(f"Got page info for {params.url}")
    return {
        "success": True,
        "url": params.url,
        "title": title or None,
        "description": description,
        "contentLength": len(html),
    }


# ---------- Adapter ----------

_CAT = ToolCategory.web

ADAPTER = ToolAdapter(
    _CAT,
    "Web and API operations",
    [
        ToolOperation(_CAT, "fetch_url", "Fetch content from URL", FetchUrlParams, fetch_url),
        ToolOperation(_CAT, "parse_html", "Parse HTML and extract elements matching a CSS selector", ParseHtmlParams, parse_html),
        ToolOperation(_CAT, "submit_form", "Submit a web form (form-encoded POST)", SubmitFormParams, submit_form),
        ToolOperation(_CAT, "parse_json", "Parse a JSON string", ParseJsonParams, parse_json),
        ToolOperation(_CAT, "get_page_info", "Get page title and meta description", PageInfoParams, get_page_info),
    ],
)
