"""
LLM call tracing helpers for GroundQL.

Shared by the intent classifier and the answer generator: content
normalization, rough token estimates, and colored request/response
log lines.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any

from langchain_core.language_models import BaseChatModel

logger = logging.getLogger("groundql.llm")

# ANSI colors for visibility in logs
_COLOR_MAGENTA = "\033[95m"
_COLOR_CYAN = "\033[96m"
_COLOR_YELLOW = "\033[93m"
_COLOR_GREEN = "\033[92m"
_COLOR_RESET = "\033[0m"

_WORD_PATTERN = re.compile(r"\S+")


def normalize_content(content: Any) -> str:
    """Flatten LLM message content (str or list of blocks) into a string."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict):
                parts.append(str(item.get("text", "")))
            else:
                parts.append(str(item))
        return "".join(parts)
    return str(content)


def estimate_tokens(text: Any) -> int:
    """Estimate token count using a simple word-based heuristic."""
    if not text:
        return 0
    if not isinstance(text, str):
        text = str(text)
    return max(1, int(len(_WORD_PATTERN.findall(text)) * 1.3))


def format_messages(messages: list[Any]) -> str:
    formatted = []
    for msg in messages:
        role = getattr(msg, "type", "unknown").upper()
        formatted.append(f"{role}:\n{getattr(msg, 'content', '')}")
    return "\n\n".join(formatted)


def extract_usage(response: Any) -> dict[str, Any]:
    """Pull token usage out of a LangChain response, if the provider sent any."""
    usage: dict[str, Any] = {}

    usage_metadata = getattr(response, "usage_metadata", None)
    if isinstance(usage_metadata, dict):
        usage.update(usage_metadata)

    response_metadata = getattr(response, "response_metadata", None)
    if isinstance(response_metadata, dict):
        token_usage = response_metadata.get("token_usage") or response_metadata.get("usage")
        if isinstance(token_usage, dict):
            usage.update(token_usage)

    return usage


def model_name(llm: BaseChatModel) -> str:
    return (
        getattr(llm, "model_name", None)
        or getattr(llm, "model", None)
        or type(llm).__name__
    )


def utc_timestamp(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def log_llm_request(
    tag: str,
    model: str,
    prompt_version: str,
    prompt_text: str,
    start_time: float,
) -> int:
    """Log an outgoing prompt; returns the prompt token estimate."""
    prompt_tokens_est = estimate_tokens(prompt_text)
    header = (
        f"{_COLOR_MAGENTA}[{tag}_LLM_REQUEST]{_COLOR_RESET} "
        f"{_COLOR_CYAN}model={model}{_COLOR_RESET} "
        f"{_COLOR_YELLOW}prompt_version={prompt_version}{_COLOR_RESET} "
        f"{_COLOR_GREEN}prompt_tokens_est={prompt_tokens_est}{_COLOR_RESET} "
        f"{_COLOR_YELLOW}start_time={utc_timestamp(start_time)}{_COLOR_RESET}"
    )
    logger.info("%s", header)
    logger.debug("%s%s%s", _COLOR_CYAN, prompt_text, _COLOR_RESET)
    return prompt_tokens_est


def log_llm_response(
    tag: str,
    model: str,
    raw_content: str,
    prompt_tokens_est: int,
    start_time: float,
    end_time: float,
    usage: dict[str, Any] | None = None,
) -> None:
    usage = usage or {}
    duration_ms = int((end_time - start_time) * 1000)

    header = (
        f"{_COLOR_MAGENTA}[{tag}_LLM_RESPONSE]{_COLOR_RESET} "
        f"{_COLOR_CYAN}model={model}{_COLOR_RESET} "
        f"{_COLOR_GREEN}prompt_tokens_est={prompt_tokens_est}{_COLOR_RESET} "
        f"{_COLOR_GREEN}response_tokens_est={estimate_tokens(raw_content)}{_COLOR_RESET} "
        f"{_COLOR_YELLOW}end_time={utc_timestamp(end_time)}{_COLOR_RESET} "
        f"{_COLOR_YELLOW}duration_ms={duration_ms}{_COLOR_RESET}"
    )

    usage_total = usage.get("total_tokens")
    usage_input = usage.get("input_tokens") or usage.get("prompt_tokens")
    usage_output = usage.get("output_tokens") or usage.get("completion_tokens")
    if usage_total is not None:
        header += f" {_COLOR_YELLOW}usage_total={usage_total}{_COLOR_RESET}"
    if usage_input is not None or usage_output is not None:
        header += f" {_COLOR_YELLOW}usage_in={usage_input} usage_out={usage_output}{_COLOR_RESET}"

    logger.info("%s", header)
    logger.debug("%s%s%s", _COLOR_CYAN, raw_content, _COLOR_RESET)
