"""
Model access for deal-stage suggestions.

The CRM asks one short question per note (which stage does this read as?),
so every call is a single prompt with a small max_tokens budget and a hard
timeout. Backend failures surface as RuntimeError and a missing API key as
ValueError; autotag treats either as "no suggestion".
"""

import logging
from typing import Optional

import requests
from anthropic import Anthropic

from jibacrm.config import config

logger = logging.getLogger(__name__)

# Accepted values of the AI_MODEL setting
MODEL_CHOICES = ['claude', 'deepseek-chat', 'deepseek-reasoner']

BROKER_SYSTEM_PROMPT = "You classify notes written by a commercial real estate broker."


def call_claude(prompt: str, system: Optional[str] = None, max_tokens: int = 200,
                timeout: float = 30.0) -> str:
    """Ask Claude. Uses the broker classification prompt when no system prompt is given."""
    if not config.ANTHROPIC_API_KEY:
        raise ValueError("ANTHROPIC_API_KEY not set in environment")

    client = Anthropic(api_key=config.ANTHROPIC_API_KEY, timeout=timeout)

    try:
        logger.debug(f"Claude request, max_tokens={max_tokens}")
        message = client.messages.create(
            model=config.CLAUDE_MODEL,
            max_tokens=max_tokens,
            system=system or BROKER_SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
        )
        return message.content[0].text

    except Exception as e:
        logger.error(f"Claude API error: {e}")
        raise RuntimeError(f"Failed to call Claude API: {e}")


def call_deepseek(
    prompt: str,
    model: str = 'deepseek-chat',
    system: Optional[str] = None,
    max_tokens: int = 200,
    timeout: float = 30.0,
) -> str:
    """Ask DeepSeek through its OpenAI-style chat endpoint. No system message unless one is passed."""
    if not config.DEEPSEEK_API_KEY:
        raise ValueError("DEEPSEEK_API_KEY not set in environment")

    messages = [{"role": "system", "content": system}] if system else []
    messages.append({"role": "user", "content": prompt})

    try:
        logger.debug(f"DeepSeek request, model={model} max_tokens={max_tokens}")
        response = requests.post(
            f"{config.DEEPSEEK_BASE_URL}/chat/completions",
            json={"model": model, "messages": messages, "max_tokens": max_tokens, "stream": False},
            headers={"Authorization": f"Bearer {config.DEEPSEEK_API_KEY}"},
            timeout=(10, timeout),
        )
        response.raise_for_status()
        return response.json()['choices'][0]['message']['content']

    except requests.exceptions.RequestException as e:
        logger.error(f"DeepSeek API error: {e}")
        raise RuntimeError(f"Failed to call DeepSeek API: {e}")
    except (KeyError, IndexError) as e:
        logger.error(f"DeepSeek response parse error: {e}")
        raise RuntimeError(f"Unexpected DeepSeek response format: {e}")


def call_ai(
    prompt: str,
    model: str,
    system: Optional[str] = None,
    max_tokens: int = 200,
    timeout: float = 30.0,
) -> str:
    """
    Send one prompt to the backend named by model (see MODEL_CHOICES).

    timeout is the read timeout in seconds. Returns the reply text unparsed;
    the caller decides whether it names a deal stage.
    """
    if model == 'claude':
        return call_claude(prompt, system=system, max_tokens=max_tokens, timeout=timeout)
    elif model in ('deepseek-chat', 'deepseek-reasoner'):
        return call_deepseek(prompt, model=model, system=system, max_tokens=max_tokens, timeout=timeout)
    else:
        raise ValueError(f"Unknown AI model '{model}'. Choose from: {', '.join(MODEL_CHOICES)}")


def has_credentials(model: str) -> bool:
    """True when the key the given backend needs is configured."""
    if model == 'claude':
        return bool(config.ANTHROPIC_API_KEY)
    return bool(config.DEEPSEEK_API_KEY)
