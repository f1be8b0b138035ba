import json
from pathlib import Path
from typing import Any

import httpx
import pytest

from patchwright.config_loader import AgentConfig, LimitsConfig, ProviderConfig

OPENAI_URL = "https://api.openai.com/v1/chat/completions"


def chat_body(content: Any, usage: dict | None = None) -> dict:
    """An OpenAI-style chat completion body whose message content is `content`."""
    if not isinstance(content, str):
        content = json.dumps(content)
    body = {"choices": [{"index": 0, "message": {"role": "assistant", "content": content}}]}
    if usage is not None:
        body["usage"] = usage
    return body


def chat_response(content: Any, status: int = 200) -> httpx.Response:
    return httpx.Response(status, json=chat_body(content))


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    (root / "src").mkdir(parents=True)
    (root / "src" / "app.js").write_text("console.log('hi')\n")
    (root / "README.md").write_text("# demo\n")
    return root


@pytest.fixture
def out_dir(tmp_path: Path) -> Path:
    d = tmp_path / "out"
    d.mkdir()
    return d


@pytest.fixture
def config(repo: Path, out_dir: Path) -> AgentConfig:
    return AgentConfig(
        provider=ProviderConfig(api_key="sk-test"),
        limits=LimitsConfig(max_attempts=1, retry_min_wait=0, retry_max_wait=0),
        repo_root=repo,
        output_dir=out_dir,
    )
