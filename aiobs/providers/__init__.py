from aiobs.providers.base import BaseProvider
from aiobs.providers.openai import OpenAIChatProvider, wrap_openai_client

__all__ = ["BaseProvider", "OpenAIChatProvider", "wrap_openai_client"]
