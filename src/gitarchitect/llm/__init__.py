"""Model gateway, prompts and response parsing."""

from gitarchitect.llm.client import (
    CompletionOptions,
    GatewayCapabilities,
    HostedModelGateway,
    LLMResponse,
    LocalModelGateway,
    ModelGateway,
    create_gateway,
)
from gitarchitect.llm.parsing import parse_json_response, strip_code_fences

__all__ = [
    "CompletionOptions",
    "GatewayCapabilities",
    "HostedModelGateway",
    "LLMResponse",
    "LocalModelGateway",
    "ModelGateway",
    "create_gateway",
    "parse_json_response",
    "strip_code_fences",
]
