"""Configuration: prompt options, tool toggles, and call-time resolution."""

from __future__ import annotations

from dataclasses import dataclass, replace
import os
from typing import TYPE_CHECKING, Any

from dotenv import load_dotenv

from gemform.errors import ConfigurationError

if TYPE_CHECKING:
    from gemform.transport import Transport

load_dotenv()

API_KEY_ENV_VAR = "GEMINI_API_KEY"
MODEL_ENV_VAR = "GEMINI_MODEL"
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MAX_ROUNDS = 8


@dataclass
class PromptOptions:
    """Per-prompt configuration.

    Owned by the caller. Each call takes a snapshot at start and never writes
    back. ``transport``, ``api_key`` and ``model`` may be left unset to fall
    back to the client's defaults and then the environment.

    Example:
        options = PromptOptions(model="gemini-2.5-flash", max_output_tokens=2048)
    """

    transport: Transport | None = None
    #: Falls back to ``GEMINI_API_KEY`` when unset everywhere else.
    api_key: str | None = None
    #: Falls back to ``GEMINI_MODEL`` when unset everywhere else.
    model: str | None = None
    temperature: float = 0.2
    top_k: int = 40
    top_p: float = 0.95
    max_output_tokens: int | None = None
    #: ``-1`` lets the model decide how much to think.
    thinking_budget: int = -1
    #: Ceiling on continuation rounds for one call, first round included.
    max_rounds: int = DEFAULT_MAX_ROUNDS
    base_url: str = DEFAULT_BASE_URL

    def snapshot(self) -> PromptOptions:
        """Shallow copy: transport and credential are shared, scalars copied."""
        return replace(self)

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        return (
            f"PromptOptions(model={self.model!r}, "
            f"api_key={'[REDACTED]' if self.api_key else None}, "
            f"temperature={self.temperature}, top_k={self.top_k}, top_p={self.top_p}, "
            f"max_output_tokens={self.max_output_tokens}, "
            f"thinking_budget={self.thinking_budget}, max_rounds={self.max_rounds})"
        )

    __repr__ = __str__


@dataclass(frozen=True)
class TextTools:
    """Built-in server tools that may be enabled for text generation."""

    url_context: bool = False
    google_search: bool = False
    code_execution: bool = False

    def to_wire(self) -> list[dict[str, Any]]:
        tools: list[dict[str, Any]] = []
        if self.url_context:
            tools.append({"urlContext": {}})
        if self.google_search:
            tools.append({"googleSearch": {}})
        if self.code_execution:
            tools.append({"codeExecution": {}})
        return tools


@dataclass(frozen=True)
class ResolvedSettings:
    """Immutable per-call view of everything the driver needs."""

    transport: Transport
    api_key: str
    model: str
    temperature: float
    top_k: int
    top_p: float
    max_output_tokens: int | None
    thinking_budget: int
    max_rounds: int
    base_url: str

    @property
    def endpoint(self) -> str:
        return f"{self.base_url.rstrip('/')}/models/{self.model}:generateContent"

    def __str__(self) -> str:
        return (
            f"ResolvedSettings(model={self.model!r}, api_key=[REDACTED], "
            f"max_rounds={self.max_rounds})"
        )

    __repr__ = __str__


def resolve_settings(
    options: PromptOptions,
    defaults: PromptOptions,
    *,
    fallback_transport: Transport | None = None,
) -> ResolvedSettings:
    """Resolve credential, model and transport: prompt -> defaults -> environment.

    Sampling fields come from *options*, which was seeded from the defaults
    when the prompt was created.

    Raises:
        ConfigurationError: If credential, model or transport cannot be
            resolved, or a numeric option is out of range.
    """
    api_key = options.api_key or defaults.api_key or os.environ.get(API_KEY_ENV_VAR)
    if not api_key:
        raise ConfigurationError(
            "API key not found",
            hint=f"Set {API_KEY_ENV_VAR} or pass PromptOptions(api_key=...).",
        )

    model = options.model or defaults.model or os.environ.get(MODEL_ENV_VAR)
    if not model or not model.strip():
        raise ConfigurationError(
            "Model identifier not found",
            hint=f"Set {MODEL_ENV_VAR} or pass PromptOptions(model='gemini-2.5-flash').",
        )

    transport = options.transport or defaults.transport or fallback_transport
    if transport is None:
        raise ConfigurationError(
            "Transport not found",
            hint="Pass PromptOptions(transport=HttpxTransport()) or use a Client.",
        )

    if options.max_rounds < 1:
        raise ConfigurationError(
            f"max_rounds must be >= 1, got {options.max_rounds}",
            hint="This bounds how many continuation rounds one call may issue.",
        )
    if options.max_output_tokens is not None and options.max_output_tokens <= 0:
        raise ConfigurationError(
            f"max_output_tokens must be a positive integer, got {options.max_output_tokens}",
            hint="Leave it as None to use the model's own limit.",
        )

    return ResolvedSettings(
        transport=transport,
        api_key=api_key,
        model=model.strip(),
        temperature=options.temperature,
        top_k=options.top_k,
        top_p=options.top_p,
        max_output_tokens=options.max_output_tokens,
        thinking_budget=options.thinking_budget,
        max_rounds=options.max_rounds,
        base_url=options.base_url,
    )
