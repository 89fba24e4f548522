"""
LLM client - Anthropic primary, OpenAI fallback.

Every call has a hard provider timeout and reports cost, latency and tokens.
A Redis-backed daily spend cap stops runaway costs; when the cap is hit the
caller gets an error result and the content transform degrades to keywords.
"""
import logging
import re
import time
from typing import Optional

logger = logging.getLogger(__name__)

# USD per million tokens (input/output)
COST_TABLE = {
    "claude-haiku-4-5-20251001": {"input": 1.00, "output": 5.00},
    "claude-sonnet-4-5-20250929": {"input": 3.00, "output": 15.00},
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4o": {"input": 2.50, "output": 10.00},
}

DAILY_SPEND_KEY = "safetalk:ai:daily_spend"
DAILY_SPEND_TTL = 86400


def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    costs = COST_TABLE.get(model, {"input": 1.0, "output": 5.0})
    return (input_tokens * costs["input"] + output_tokens * costs["output"]) / 1_000_000


def _sanitize_output_text(text: str) -> str:
    """Remove hidden reasoning blocks returned by some providers."""
    if not text:
        return ""
    cleaned = re.sub(r"<think>.*?</think>", "", text, flags=re.DOTALL | re.IGNORECASE)
    return cleaned.strip()


def strip_markdown_fences(text: str) -> str:
    """Strip ```json fences models like to wrap JSON answers in."""
    match = re.search(r"```(?:json)?\s*\n?(.*?)```", text, re.DOTALL)
    if match:
        return match.group(1).strip()
    if text.startswith("```"):
        lines = [l for l in text.split("\n") if not l.strip().startswith("```")]
        return "\n".join(lines).strip()
    return text


async def _check_daily_budget() -> tuple[bool, float]:
    """Returns (allowed, current_spend). Redis trouble never blocks a call."""
    try:
        from safetalk.utils.dedup import get_redis
        from safetalk.config import get_settings
        budget = get_settings().ai_daily_budget_usd

        redis = await get_redis()
        current_raw = await redis.get(DAILY_SPEND_KEY)
        current = float(current_raw) if current_raw else 0.0
        return current < budget, current
    except Exception as e:
        logger.debug("Budget check failed (allowing): %s", str(e))
        return True, 0.0


async def _record_spend(cost_usd: float) -> None:
    if cost_usd <= 0:
        return
    try:
        from safetalk.utils.dedup import get_redis
        redis = await get_redis()
        pipe = redis.pipeline()
        pipe.incrbyfloat(DAILY_SPEND_KEY, cost_usd)
        pipe.expire(DAILY_SPEND_KEY, DAILY_SPEND_TTL)
        await pipe.execute()
    except Exception as e:
        logger.debug("Spend recording failed: %s", str(e))


def _error_result(error_msg: str) -> dict:
    return {
        "content": "",
        "provider": "none",
        "model": "none",
        "latency_ms": 0,
        "cost_usd": 0.0,
        "input_tokens": 0,
        "output_tokens": 0,
        "error": error_msg,
    }


def _pick_model(settings, provider: str, model_tier: str, max_tokens: Optional[int]) -> tuple[str, int]:
    smart = model_tier == "smart"
    model = getattr(settings, f"{provider}_model_{'smart' if smart else 'fast'}")
    tokens = max_tokens or getattr(settings, f"{provider}_max_tokens_{'smart' if smart else 'fast'}")
    return model, tokens


async def generate_response(
    system_prompt: str,
    user_message: str,
    model_tier: str = "fast",
    max_tokens: Optional[int] = None,
    temperature: float = 0.3,
) -> dict:
    """
    Generate a completion. Anthropic first, OpenAI if Anthropic fails or is
    not configured.

    Args:
        system_prompt: System instructions
        user_message: The co-parent text being filtered or rephrased
        model_tier: "fast" or "smart"
        max_tokens: Override default max tokens
        temperature: Response randomness (0.0-1.0)

    Returns:
        {"content", "provider", "model", "latency_ms", "cost_usd",
         "input_tokens", "output_tokens", "error"} - error is None on success.
    """
    from safetalk.config import get_settings
    settings = get_settings()

    allowed, current_spend = await _check_daily_budget()
    if not allowed:
        logger.warning(
            "AI daily budget exceeded: $%.4f spent of $%.2f limit",
            current_spend, settings.ai_daily_budget_usd,
            extra={"operation": "ai_generate"},
        )
        return _error_result(
            f"Daily AI budget exceeded (${current_spend:.2f}/${settings.ai_daily_budget_usd:.2f})"
        )

    if settings.anthropic_api_key:
        try:
            result = await _generate_anthropic(
                system_prompt, user_message, model_tier, max_tokens, temperature,
            )
            await _record_spend(result["cost_usd"])
            return result
        except Exception as e:
            logger.error("Anthropic failed: %s", str(e), extra={"provider": "anthropic"})

    if settings.openai_api_key:
        try:
            result = await _generate_openai(
                system_prompt, user_message, model_tier, max_tokens, temperature,
            )
            await _record_spend(result["cost_usd"])
            return result
        except Exception as e:
            logger.error("OpenAI fallback failed: %s", str(e), extra={"provider": "openai"})

    return _error_result("No AI provider available (check API keys)")


async def _generate_anthropic(
    system_prompt: str,
    user_message: str,
    model_tier: str,
    max_tokens: Optional[int],
    temperature: float,
) -> dict:
    from anthropic import AsyncAnthropic
    from safetalk.config import get_settings
    settings = get_settings()

    model, tokens = _pick_model(settings, "anthropic", model_tier, max_tokens)
    client = AsyncAnthropic(
        api_key=settings.anthropic_api_key,
        timeout=settings.anthropic_timeout_seconds,
    )

    start = time.monotonic()
    response = await client.messages.create(
        model=model,
        max_tokens=tokens,
        temperature=temperature,
        system=system_prompt,
        messages=[{"role": "user", "content": user_message}],
    )
    latency_ms = int((time.monotonic() - start) * 1000)

    content = "".join(block.text for block in response.content if block.type == "text")
    input_tokens = response.usage.input_tokens if response.usage else 0
    output_tokens = response.usage.output_tokens if response.usage else 0

    return {
        "content": _sanitize_output_text(content),
        "provider": "anthropic",
        "model": model,
        "latency_ms": latency_ms,
        "cost_usd": calculate_cost(model, input_tokens, output_tokens),
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "error": None,
    }


async def _generate_openai(
    system_prompt: str,
    user_message: str,
    model_tier: str,
    max_tokens: Optional[int],
    temperature: float,
) -> dict:
    from openai import AsyncOpenAI
    from safetalk.config import get_settings
    settings = get_settings()

    model, tokens = _pick_model(settings, "openai", model_tier, max_tokens)
    client = AsyncOpenAI(
        api_key=settings.openai_api_key,
        base_url=(settings.openai_base_url or None),
        timeout=settings.openai_timeout_seconds,
    )

    start = time.monotonic()
    response = await client.chat.completions.create(
        model=model,
        max_tokens=tokens,
        temperature=temperature,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_message},
        ],
    )
    latency_ms = int((time.monotonic() - start) * 1000)

    content = response.choices[0].message.content if response.choices else ""
    input_tokens = response.usage.prompt_tokens if response.usage else 0
    output_tokens = response.usage.completion_tokens if response.usage else 0

    return {
        "content": _sanitize_output_text(content or ""),
        "provider": "openai",
        "model": model,
        "latency_ms": latency_ms,
        "cost_usd": calculate_cost(model, input_tokens, output_tokens),
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "error": None,
    }
