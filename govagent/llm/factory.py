from typing import Any, Optional

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_openai import ChatOpenAI

from govagent.config import common_settings
from govagent.config.agent_settings import AgentConfig
from govagent.utils.logger import logger


def create_chat_model(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    api_key: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
    timeout: Optional[float] = None,
) -> BaseChatModel:
    provider_name = (provider or common_settings.DEFAULT_PROVIDER).lower()
    provider_config = AgentConfig.get_llm_config("xai" if provider_name in ("xai", "x-ai", "grok") else provider_name)
    temp = provider_config["temperature"] if temperature is None else float(temperature)
    tokens = provider_config["max_tokens"] if max_tokens is None else int(max_tokens)
    retries = int(provider_config.get("max_retries", 2))

    if provider_name == "openai":
        api_key = api_key or common_settings.OPENAI_API_KEY
        if not api_key:
            raise RuntimeError("OPENAI_API_KEY not set")
        return ChatOpenAI(
            model=model or common_settings.OPENAI_DEFAULT_MODEL,
            api_key=api_key,
            timeout=timeout,
            max_retries=retries,
            temperature=temp,
            max_tokens=tokens,
        )

    # xAI (Grok) via OpenAI-compatible API
    if provider_name in ("xai", "x-ai", "grok"):
        api_key = api_key or common_settings.X_AI_API_KEY
        if not api_key:
            raise RuntimeError("X_AI_API_KEY not set")
        return ChatOpenAI(
            model=model or common_settings.XAI_DEFAULT_MODEL,
            api_key=api_key,
            base_url="https://api.x.ai/v1",
            timeout=timeout,
            max_retries=retries,
            temperature=temp,
            max_tokens=tokens,
        )

    raise ValueError(f"Unsupported provider: {provider_name}")


def create_oracle_model(provider: Optional[str] = None, timeout: Optional[float] = None) -> Optional[BaseChatModel]:
    """Chat model for the decision oracle, or None when no credential is configured."""
    try:
        return create_chat_model(provider=provider, timeout=timeout)
    except RuntimeError as e:
        logger.warning("LLMFactory: decision oracle disabled (%s); using default score and canned replies", e)
        return None


def extract_text_content(content: Any) -> str:
    """
    Normalize LLM message content to a plain text string.

    Some providers return content as a list of ``{"type": "text", "text": ...}``
    blocks instead of a plain string.

    Examples:
        >>> extract_text_content("Hello world")
        'Hello world'
        >>> extract_text_content([{"type": "text", "text": "Hello"}])
        'Hello'
    """
    if isinstance(content, list):
        return "".join(
            p.get("text", "") if isinstance(p, dict) else str(p)
            for p in content
            if isinstance(p, str) or (isinstance(p, dict) and p.get("type", "text") == "text")
        )
    if isinstance(content, str):
        return content
    return str(content) if content is not None else ""


def identify_model_name(llm: BaseChatModel) -> str:
    """Return the model name from a LangChain chat model instance."""
    model_name = getattr(llm, "model_name", None) or getattr(llm, "model", None)
    return str(model_name) if model_name else type(llm).__name__
