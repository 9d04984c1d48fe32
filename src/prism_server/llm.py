"""Model backends that turn a chat message list into a raw completion payload.

Backends deliberately return their native payload shape; callers run it
through :func:`palette.normalizer.normalize_completion`.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from palette.errors import ModelInvocationError

logger = logging.getLogger(__name__)

Messages = List[Dict[str, str]]


# -----------------------------
# Types & defaults
# -----------------------------

@dataclass
class GenerationConfig:
    max_new_tokens: int = 512
    temperature: float = 0.7


def _bool(v: Any, default: bool) -> bool:
    if v is None:
        return default
    if isinstance(v, bool):
        return v
    if isinstance(v, str):
        return v.strip().lower() in {"1", "true", "yes", "y", "on"}
    return bool(v)


# -----------------------------
# Cloudflare Workers AI (REST)
# -----------------------------

class WorkersAIModel:
    """Calls a Workers AI text-generation model over the REST API.

    Returns the ``result`` member of the API envelope, typically
    ``{"response": "..."}``.
    """

    def __init__(
        self,
        account_id: str,
        api_token: str,
        model: str,
        *,
        base_url: str = "https://api.cloudflare.com/client/v4",
        timeout: float = 60.0,
        generation: Optional[GenerationConfig] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        if not account_id or not api_token:
            raise ValueError("Workers AI backend needs model.account_id and model.api_token")
        self.url = f"{base_url.rstrip('/')}/accounts/{account_id}/ai/run/{model}"
        self.model = model
        self.generation = generation or GenerationConfig()
        self._client = client or httpx.Client(timeout=httpx.Timeout(timeout, connect=10.0))
        self._headers = {"Authorization": f"Bearer {api_token}"}

    def run(self, messages: Messages) -> Any:
        body = {
            "messages": messages,
            "max_tokens": self.generation.max_new_tokens,
            "temperature": self.generation.temperature,
        }
        try:
            resp = self._client.post(self.url, json=body, headers=self._headers)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            raise ModelInvocationError(
                details=f"{self.model} returned HTTP {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise ModelInvocationError(details=f"{self.model} request failed: {e}") from e

        if isinstance(data, dict) and "result" in data:
            if data.get("success") is False:
                raise ModelInvocationError(details=f"{self.model} reported errors: {data.get('errors')}")
            return data["result"]
        return data


# -----------------------------
# GGUF wrapper
# -----------------------------

class GGUFModel:
    """Thin wrapper around :mod:`llama_cpp` for local generation.

    Returns the first completion choice, a dict carrying ``text``.
    """

    def __init__(self, model_path: str, *, generation: Optional[GenerationConfig] = None, **kwargs: Any) -> None:
        """
        Parameters
        ----------
        model_path : str
            Path to .gguf weights.
        kwargs : Any
            Passed to llama_cpp.Llama with some smart defaults:
              - n_threads: defaults to os.cpu_count()
              - n_gpu_layers: auto if gpu offload supported; else 0
              - use_mmap: default True, with fallback retry if OSError
        """
        # Lazy import so the server runs without the optional dependency.
        from llama_cpp import Llama, llama_supports_gpu_offload  # type: ignore

        threads = kwargs.get("n_threads")
        if threads is None or int(threads) <= 0:
            kwargs["n_threads"] = os.cpu_count() or 1

        if kwargs.get("n_gpu_layers") is None:
            kwargs["n_gpu_layers"] = -1 if llama_supports_gpu_offload() else 0

        use_mmap = _bool(kwargs.get("use_mmap", True), True)
        kwargs["use_mmap"] = use_mmap
        kwargs.setdefault("verbose", False)

        try:
            self._llama = Llama(model_path=model_path, **kwargs)
        except OSError as e:
            if not use_mmap:
                raise
            # Retry without mmap on network filesystems / Windows oddities.
            logger.warning("mmap load failed, retrying without mmap: %s", e)
            kwargs["use_mmap"] = False
            self._llama = Llama(model_path=model_path, **kwargs)

        self._supports_chat_template = hasattr(self._llama, "apply_chat_template")
        self.generation = generation or GenerationConfig()
        self._default_stops = ["</s>", "###", "User:"]

    def run(self, messages: Messages) -> Any:
        prompt = self._render_chat(messages)
        out = self._llama.create_completion(
            prompt=prompt,
            max_tokens=self.generation.max_new_tokens,
            temperature=self.generation.temperature,
            stop=self._default_stops,
        )
        choices = out.get("choices") or [None]
        return choices[0]

    def _render_chat(self, messages: Messages) -> str:
        """Render chat messages to a prompt string.

        Uses the llama.cpp chat template if available; otherwise falls back
        to a simple instruction-style format.
        """
        if self._supports_chat_template:
            try:
                tpl = self._llama.apply_chat_template(messages, add_generation_prompt=True)
                if isinstance(tpl, (bytes, bytearray)):
                    return bytes(tpl).decode("utf-8", errors="ignore")
                return str(tpl)
            except Exception as e:
                logger.debug("Chat template failed, using instruction template: %s", e)

        return render_instruction_prompt(messages)


def render_instruction_prompt(messages: Messages) -> str:
    """Generic instruction template for weights without a chat template."""
    lines: List[str] = []
    sys_lines = [m["content"] for m in messages if m["role"] == "system"]
    if sys_lines:
        lines.append("### System\n" + "\n".join(sys_lines).strip() + "\n")
    for m in messages:
        if m["role"] == "user":
            lines.append("### User\n" + m["content"].strip() + "\n")
        elif m["role"] == "assistant":
            lines.append("### Assistant\n" + m["content"].strip() + "\n")
    lines.append("### Assistant\n")
    return "\n".join(lines)


# -----------------------------
# Convenience factory
# -----------------------------

def create_from_config(cfg: Dict[str, Any]) -> Any:
    """Create the configured backend from a config dict (e.g., loaded YAML)."""
    model_cfg = (cfg or {}).get("model", {}) if isinstance(cfg, dict) else {}
    backend = str(model_cfg.get("backend", "workers_ai")).lower()
    generation = GenerationConfig(
        max_new_tokens=int(model_cfg.get("max_tokens", 512)),
        temperature=float(model_cfg.get("temperature", 0.7)),
    )

    if backend == "workers_ai":
        return WorkersAIModel(
            account_id=str(model_cfg.get("account_id") or os.environ.get("CLOUDFLARE_ACCOUNT_ID", "")),
            api_token=str(model_cfg.get("api_token") or os.environ.get("CLOUDFLARE_API_TOKEN", "")),
            model=str(model_cfg.get("name", "@cf/meta/llama-3.3-70b-instruct-fp8-fast")),
            base_url=str(model_cfg.get("base_url", "https://api.cloudflare.com/client/v4")),
            timeout=float(model_cfg.get("timeout", 60)),
            generation=generation,
        )

    if backend == "llama_cpp":
        model_dir = model_cfg.get("model_dir")
        model_path = model_cfg.get("model_path")
        if model_dir and model_path and not os.path.isabs(model_path):
            model_path = os.path.join(model_dir, model_path)
        if not model_path or not os.path.exists(model_path):
            raise FileNotFoundError(f"Model not found at: {model_path!r}")

        params = {
            "n_ctx": model_cfg.get("n_ctx", 4096),
            "n_threads": model_cfg.get("n_threads"),
            "n_gpu_layers": model_cfg.get("n_gpu_layers"),
            "use_mmap": model_cfg.get("use_mmap", True),
        }
        # Remove None entries (llama.cpp is picky)
        params = {k: v for k, v in params.items() if v is not None}
        return GGUFModel(model_path, generation=generation, **params)

    raise ValueError(f"Unknown model backend {backend!r}; expected 'workers_ai' or 'llama_cpp'")
