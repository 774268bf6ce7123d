"""gemform: strongly-typed structured output from Gemini generateContent.

Public API:
    - Client: generate_object() / generate_text() against a transport
    - Prompt: conversation builder
    - PromptOptions, TextTools: configuration
    - SchemaProperty, SchemaIgnore, schema_property, schema_ignore: schema markers
    - ResultEnvelope, TextResult: results that carry errors instead of raising
"""

from __future__ import annotations

import logging

from gemform.client import Client
from gemform.config import PromptOptions, TextTools
from gemform.content import (
    Candidate,
    CodeExecutionResult,
    ExecutableCode,
    ExecutableCodePart,
    ExecutableCodeResultPart,
    FinishReason,
    InlineData,
    InlineDataPart,
    Role,
    RoundResponse,
    TextPart,
    Turn,
    UsageMetadata,
)
from gemform.errors import (
    CallCancelledError,
    CloneError,
    ConfigurationError,
    GemformError,
    MalformedResponseError,
    MaterializationError,
    RoundLimitError,
    SchemaError,
    TransportError,
)
from gemform.markers import (
    NullOption,
    PropertyFormat,
    SchemaIgnore,
    SchemaProperty,
    schema_ignore,
    schema_property,
)
from gemform.prompt import Prompt
from gemform.result import ResultEnvelope, TextResult
from gemform.retry import RetryPolicy
from gemform.schema import Schema, SchemaType, compile_schema
from gemform.transport import (
    HttpxTransport,
    Transport,
    TransportRequest,
    TransportResponse,
)

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("gemform")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("gemform").addHandler(logging.NullHandler())

__all__ = [
    "CallCancelledError",
    "Candidate",
    "Client",
    "CloneError",
    "CodeExecutionResult",
    "ConfigurationError",
    "ExecutableCode",
    "ExecutableCodePart",
    "ExecutableCodeResultPart",
    "FinishReason",
    "GemformError",
    "HttpxTransport",
    "InlineData",
    "InlineDataPart",
    "MalformedResponseError",
    "MaterializationError",
    "NullOption",
    "Prompt",
    "PromptOptions",
    "PropertyFormat",
    "ResultEnvelope",
    "RetryPolicy",
    "Role",
    "RoundLimitError",
    "RoundResponse",
    "Schema",
    "SchemaError",
    "SchemaIgnore",
    "SchemaProperty",
    "SchemaType",
    "TextPart",
    "TextResult",
    "TextTools",
    "Transport",
    "TransportError",
    "TransportRequest",
    "TransportResponse",
    "Turn",
    "UsageMetadata",
    "compile_schema",
    "schema_ignore",
    "schema_property",
]
