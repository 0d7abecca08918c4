"""
LLM Client Abstraction
Single entry point for AI vision calls in hf.bluebook.

Each call is one round-trip to the configured model. There is no retry and no
fallback model: callers decide how a failure is surfaced.
"""
import logging
from typing import Optional
import litellm

from bluebook.config import AUTOPLAN_VISION_MODEL, LLM_MAX_TOKENS, LLM_TEMPERATURE

logger = logging.getLogger("bluebook-llm")

# Suppress litellm verbose logging
litellm.set_verbose = False


class LLMTransportError(RuntimeError):
    """The completion service could not be reached or returned no usable text."""


def build_vision_messages(images_base64: list[str], prompt: str) -> list[dict]:
    content = []
    for img_b64 in images_base64:
        content.append({
            "type": "image_url",
            "image_url": {"url": f"data:image/png;base64,{img_b64}"},
        })
    content.append({"type": "text", "text": prompt})
    return [{"role": "user", "content": content}]


async def complete_with_vision(
    images_base64: list[str],
    prompt: str,
    model: Optional[str] = None,
    temperature: float = LLM_TEMPERATURE,
    max_tokens: int = LLM_MAX_TOKENS,
) -> str:
    """
    Send PNG page renders plus a text prompt to a vision-capable model.
    images_base64: list of base64-encoded PNG strings
    Returns the response text.
    """
    model = model or AUTOPLAN_VISION_MODEL
    try:
        response = await litellm.acompletion(
            model=model,
            messages=build_vision_messages(images_base64, prompt),
            temperature=temperature,
            max_tokens=max_tokens,
        )
    except Exception as e:
        logger.error(f"Vision call to {model} failed: {type(e).__name__}: {e}")
        raise LLMTransportError(f"Vision LLM failed: {e}") from e

    text = response.choices[0].message.content if response.choices else None
    if not text:
        raise LLMTransportError("No text response from vision model")
    return text


class LLMClient:
    """
    Class-based wrapper around complete_with_vision(); lets services take the
    client as a dependency and tests substitute a fake.
    """

    def __init__(self, model: Optional[str] = None):
        self.model = model or AUTOPLAN_VISION_MODEL

    async def vision(self, images_base64: list, prompt: str, **kwargs) -> str:
        return await complete_with_vision(images_base64, prompt, model=self.model, **kwargs)
