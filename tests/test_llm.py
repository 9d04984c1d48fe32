from __future__ import annotations

import json

import httpx
import pytest

from palette.errors import ModelInvocationError
from palette.normalizer import normalize_completion
from prism_server.llm import WorkersAIModel, create_from_config, render_instruction_prompt

MESSAGES = [
    {"role": "system", "content": "Be a palette engine."},
    {"role": "user", "content": "stormy harbor"},
]


def _model(handler) -> WorkersAIModel:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return WorkersAIModel("acct", "token", "@cf/meta/llama-3.3-70b-instruct-fp8-fast", client=client)


def test_workers_ai_returns_result_payload():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        palette = {"name": "Harbor", "colors": ["#1B2631"], "description": "Grey water."}
        return httpx.Response(200, json={"success": True, "result": {"response": json.dumps(palette)}})

    payload = _model(handler).run(MESSAGES)

    assert "/accounts/acct/ai/run/" in seen["url"]
    assert seen["url"].endswith("llama-3.3-70b-instruct-fp8-fast")
    assert seen["auth"] == "Bearer token"
    assert seen["body"]["messages"] == MESSAGES
    assert normalize_completion(payload)["name"] == "Harbor"


def test_workers_ai_http_error_is_model_invocation_error():
    model = _model(lambda request: httpx.Response(502, text="bad gateway"))
    with pytest.raises(ModelInvocationError) as info:
        model.run(MESSAGES)
    assert "502" in info.value.details


def test_workers_ai_transport_error_is_model_invocation_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ModelInvocationError):
        _model(handler).run(MESSAGES)


def test_workers_ai_unsuccessful_envelope():
    model = _model(lambda request: httpx.Response(200, json={"success": False, "errors": ["quota"], "result": None}))
    with pytest.raises(ModelInvocationError):
        model.run(MESSAGES)


def test_workers_ai_requires_credentials():
    with pytest.raises(ValueError):
        WorkersAIModel("", "", "m")


def test_create_from_config_picks_workers_ai(clean_env):
    model = create_from_config({"model": {"backend": "workers_ai", "account_id": "a", "api_token": "t", "name": "m"}})
    assert isinstance(model, WorkersAIModel)
    assert model.url.endswith("/accounts/a/ai/run/m")


def test_create_from_config_missing_gguf(tmp_path):
    with pytest.raises(FileNotFoundError):
        create_from_config({"model": {"backend": "llama_cpp", "model_path": str(tmp_path / "none.gguf")}})


def test_create_from_config_unknown_backend():
    with pytest.raises(ValueError):
        create_from_config({"model": {"backend": "carrier-pigeon"}})


def test_instruction_prompt_layout():
    prompt = render_instruction_prompt(MESSAGES)
    assert prompt.startswith("### System\nBe a palette engine.")
    assert "### User\nstormy harbor" in prompt
    assert prompt.rstrip().endswith("### Assistant")
