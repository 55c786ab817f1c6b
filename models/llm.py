from __future__ import annotations

import logging
import time
from contextlib import closing
from dataclasses import dataclass, replace
from typing import Any, Callable, List, Optional

import httpx
import ollama
from langchain_core.language_models import BaseLanguageModel
from langchain_ollama import OllamaLLM
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from common.config import LLMConfig, yaml_config
from common.errors import ModelTimeoutError, ModelUnavailableError
from common.logger import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class GenerationOptions:
    model: Optional[str] = None  # local model id, e.g. "llama3:8b"
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    timeout_ms: Optional[int] = None


def load_ollama_llm(
    model: str,
    *,
    temperature: float = 0.1,
    max_tokens: int = 512,
    timeout_s: float | None = 120,
    base_url: str | None = None,
    **kwargs: Any,
) -> BaseLanguageModel:
    """Return a LangChain LLM wired to a locally running Ollama instance.

    Args:
        model: Name of the Ollama model to run (e.g. ``"llama3:8b"``).
        temperature: Sampling temperature for generation.
        max_tokens: Maximum number of tokens to generate per response.
        timeout_s: HTTP timeout for each read. A backend that keeps
            streaming tokens never trips it; ``ModelClient`` enforces the
            overall deadline.
        base_url: Ollama endpoint, defaults to the configured one.
        **kwargs: Additional keyword arguments forwarded to ``OllamaLLM``.
    """
    return OllamaLLM(
        model=model,
        temperature=temperature,
        num_predict=max_tokens,
        base_url=base_url or yaml_config.llm.base_url,
        client_kwargs={"timeout": timeout_s},
        **kwargs,
    )


LLMFactory = Callable[[GenerationOptions, str], Any]


def _default_factory(opts: GenerationOptions, base_url: str) -> BaseLanguageModel:
    return load_ollama_llm(
        opts.model,
        temperature=opts.temperature,
        max_tokens=opts.max_tokens,
        timeout_s=opts.timeout_ms / 1000,
        base_url=base_url,
    )


class ModelClient:
    def __init__(
        self,
        config: LLMConfig | None = None,
        llm_factory: LLMFactory | None = None,
    ):
        """
        Thin client over the local inference backend.

        Connection failures map to ModelUnavailableError and get one retry
        with backoff; deadline overruns map to ModelTimeoutError and are
        never retried.
        """
        self.config = config or yaml_config.llm
        if self.config.provider != "ollama":
            raise ValueError(f"Unsupported provider: {self.config.provider}")
        self._factory = llm_factory or _default_factory

    def resolve(self, options: GenerationOptions | None = None) -> GenerationOptions:
        opts = options or GenerationOptions()
        return replace(
            opts,
            model=opts.model or self.config.model_name,
            max_tokens=opts.max_tokens or self.config.max_tokens,
            temperature=(
                self.config.temperature if opts.temperature is None else opts.temperature
            ),
            timeout_ms=opts.timeout_ms or self.config.timeout_ms,
        )

    def generate(self, prompt: str, options: GenerationOptions | None = None) -> str:
        opts = self.resolve(options)
        retryer = Retrying(
            retry=retry_if_exception_type(ModelUnavailableError),
            stop=stop_after_attempt(2),
            wait=wait_exponential(multiplier=self.config.retry_backoff_s, max=8),
            before_sleep=before_sleep_log(log, logging.WARNING),
            reraise=True,
        )
        return retryer(self._invoke, prompt, opts)

    def _invoke(self, prompt: str, opts: GenerationOptions) -> str:
        llm = self._factory(opts, self.config.base_url)
        log.info("Calling %s (prompt %d chars)", opts.model, len(prompt))
        # the HTTP timeout only bounds each read; the deadline bounds the whole answer
        deadline = time.monotonic() + opts.timeout_ms / 1000
        chunks: List[str] = []
        try:
            with closing(llm.stream(prompt)) as stream:
                for chunk in stream:
                    chunks.append(chunk)
                    if time.monotonic() > deadline:
                        raise ModelTimeoutError(
                            f"{opts.model}: still generating after {opts.timeout_ms} ms"
                        )
        except httpx.ConnectTimeout as e:
            raise ModelUnavailableError(f"{self.config.base_url}: connect timed out") from e
        except httpx.TimeoutException as e:
            raise ModelTimeoutError(
                f"{opts.model}: no response within {opts.timeout_ms} ms"
            ) from e
        except (ConnectionError, httpx.TransportError) as e:
            raise ModelUnavailableError(f"{self.config.base_url}: {e}") from e
        except ollama.ResponseError as e:
            # e.g. 404 when the model has not been pulled
            raise ModelUnavailableError(f"{opts.model}: {e.error} ({e.status_code})") from e
        text = "".join(chunks)
        log.info("Model %s returned %d chars", opts.model, len(text))
        return text

    def available_models(self) -> List[str]:
        try:
            resp = ollama.Client(host=self.config.base_url, timeout=5).list()
        except (ConnectionError, httpx.HTTPError, ollama.ResponseError) as e:
            log.debug("Ollama not reachable at %s: %s", self.config.base_url, e)
            return []
        return [m.model for m in resp.models]

    def is_available(self) -> bool:
        models = self.available_models()
        if models:
            log.info("Ollama models available: %s", ", ".join(models))
        return bool(models)
