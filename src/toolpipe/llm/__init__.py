from __future__ import annotations

from .client import ModelProvider, OpenAIChatProvider
from .fake import ProviderRequest, ScriptedProvider
from .messages import to_openai_messages, to_openai_tools

__all__ = [
    "ModelProvider",
    "OpenAIChatProvider",
    "ProviderRequest",
    "ScriptedProvider",
    "to_openai_messages",
    "to_openai_tools",
]
