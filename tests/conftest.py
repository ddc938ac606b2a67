from __future__ import annotations

import json
from collections.abc import Callable, Iterator
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from linguascope.app import dependencies
from linguascope.app.dependencies import reset_cached_dependencies
from linguascope.app.main import create_app
from linguascope.app.services.llm_client import GenerationRequest

RELAY_PREFIX = "https://relay.test/fetch?url="

ENGLISH_ANALYSIS = {
    "title": "Rust in the Kernel",
    "oneLineSummary": "Linux maintainers agreed to accept more Rust drivers.",
    "keyPoints": [
        "Rust drivers are now accepted upstream.",
        "Memory safety bugs motivated the change.",
        "C remains the primary language.",
    ],
    "keyEntities": ["Linux", "Linus Torvalds"],
    "keywords": ["rust", "kernel", "drivers"],
}

KOREAN_ANALYSIS = {
    "oneLineSummary": "리눅스 메인테이너들이 더 많은 Rust 드라이버를 받아들이기로 했습니다.",
    "keyPoints": [
        "Rust 드라이버가 이제 업스트림에 수용됩니다.",
        "메모리 안전성 버그가 변화의 계기가 되었습니다.",
        "C는 여전히 주 언어입니다.",
    ],
    "keyEntities": ["리눅스", "리누스 토르발스"],
    "keywords": ["러스트", "커널", "드라이버"],
}

KOREAN_CONTENT_HTML = "<p>리눅스 커널이 Rust 드라이버를 더 많이 받아들입니다.</p>"

ARTICLE_HTML = """<!DOCTYPE html>
<html>
<head><title>Rust in the Kernel</title><script>window.tracking = true;</script></head>
<body>
<nav class="site-nav"><a href="/">Home</a> | <a href="/news">News</a></nav>
<article>
<h1>Rust in the Kernel</h1>
<p>Linux maintainers agreed this week to accept more drivers written in Rust, citing the
steady stream of memory safety bugs found in older C drivers over the last decade.</p>
<p>The change does not replace C. Most of the kernel will stay in C for the foreseeable
future, but new subsystems may choose Rust. Read the <a href="/docs/rust">policy notes</a>.</p>
</article>
<aside class="sidebar">Subscribe to our newsletter</aside>
<footer>Copyright</footer>
</body>
</html>"""

Reply = str | Callable[[str], str]


class FakeLlmBackend:
    """Scripted model backend that answers each kind of call with a canned reply."""

    def __init__(self) -> None:
        self.replies: dict[str, Reply] = {
            "detect": "en",
            "analyze": json.dumps(ENGLISH_ANALYSIS),
            "translate_analysis": json.dumps(KOREAN_ANALYSIS, ensure_ascii=False),
            "translate_content": KOREAN_CONTENT_HTML,
            "enhance": "<h2>요약</h2><p>리눅스 커널이 Rust 드라이버를 더 많이 받아들입니다.</p>",
        }
        self.failures: dict[str, Exception] = {}
        self.calls: list[tuple[str, str, GenerationRequest]] = []

    async def generate(self, *, model: str, contents: str, request: GenerationRequest) -> str:
        kind = _classify_call(contents, request)
        self.calls.append((kind, model, request))
        failure = self.failures.get(kind)
        if failure is not None:
            raise failure
        reply = self.replies[kind]
        if callable(reply):
            return reply(contents)
        return reply

    def call_kinds(self) -> list[str]:
        return [kind for kind, _, _ in self.calls]


def _classify_call(contents: str, request: GenerationRequest) -> str:
    if request.system_instruction is not None:
        return "translate_content"
    if request.response_schema is not None:
        if "title" in request.response_schema["properties"]:
            return "analyze"
        return "translate_analysis"
    if contents.startswith("Detect the predominant language"):
        return "detect"
    return "enhance"


class FakeSite:
    """Pages served behind the fake relay, keyed by the original URL."""

    def __init__(self) -> None:
        self.pages: dict[str, tuple[int, str]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, url: str, html: str, *, status_code: int = 200) -> None:
        self.pages[url] = (status_code, html)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        target = request.url.params.get("url")
        if target is None or target not in self.pages:
            return httpx.Response(404, text="not found")
        status_code, html = self.pages[target]
        return httpx.Response(status_code, text=html, headers={"Content-Type": "text/html"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_backend() -> FakeLlmBackend:
    return FakeLlmBackend()


@pytest.fixture
def fake_site() -> FakeSite:
    site = FakeSite()
    site.add("https://news.example.com/rust-kernel", ARTICLE_HTML)
    return site


@pytest.fixture
def client(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    fake_backend: FakeLlmBackend,
    fake_site: FakeSite,
) -> Iterator[TestClient]:
    data_dir = tmp_path / "runtime-data"
    data_dir.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("LINGUASCOPE_DATA_DIR", str(data_dir))
    monkeypatch.setenv("LINGUASCOPE_GEMINI_API_KEY", "test-gemini-key")
    monkeypatch.setenv("LINGUASCOPE_LLM_TRANSPORT", "direct")
    monkeypatch.setenv("LINGUASCOPE_CORS_RELAY_PREFIX", RELAY_PREFIX)
    monkeypatch.setattr(dependencies, "build_llm_backend", lambda settings: fake_backend)
    monkeypatch.setattr(dependencies, "build_http_transport", lambda settings: fake_site.transport())
    reset_cached_dependencies()

    app = create_app()
    with TestClient(app) as test_client:
        yield test_client

    reset_cached_dependencies()
