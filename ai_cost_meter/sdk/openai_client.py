"""
Metered OpenAI client wrapper.

Gates chat completions through admission control, serves repeated
requests from the result cache and records usage after each real call.
"""

import logging
from typing import Any, Dict, List, Optional

from openai import OpenAI

from ..core.admission import DenialReason
from ..core.errors import QuotaExceededError, RateLimitedError
from ..optimizer import CostOptimizer

logger = logging.getLogger(__name__)


class MeteredOpenAI:
    """OpenAI client wrapper that enforces tier limits and records usage.

    Model errors propagate unchanged. Metering failures never do: the
    optimizer admits on store errors and treats cache errors as misses.
    """

    def __init__(
        self,
        optimizer: CostOptimizer,
        model: str,
        use_case: str,
        client: Optional[OpenAI] = None,
    ):
        """Initialize metered OpenAI client.

        Args:
            optimizer: CostOptimizer used for admission, caching and usage
            model: OpenAI model name (required)
            use_case: Use case identifier for tracking (required)
            client: Existing OpenAI client (a new one is created if omitted)

        Raises:
            ValueError: If model or use_case is missing/empty
        """
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")
        if not use_case or not use_case.strip():
            raise ValueError("use_case is required and cannot be empty")

        self.optimizer = optimizer
        self.model = model
        self.use_case = use_case
        self.client = client or OpenAI()

    def chat(
        self,
        user_id: str,
        tier: str,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        **kwargs: Any
    ) -> Dict[str, Any]:
        """Create a chat completion on behalf of a user.

        Args:
            user_id: User the request is metered against
            tier: User's subscription tier
            messages: List of message dictionaries (required)
            temperature: Sampling temperature (optional)
            max_tokens: Maximum tokens to generate (optional)
            **kwargs: Additional OpenAI parameters

        Returns:
            Dictionary with 'content', 'usage', 'cached' and 'id'

        Raises:
            ValueError: If messages is empty
            QuotaExceededError: If the user's daily or monthly quota is used up
            RateLimitedError: If the user's rate-limit window is full
            OpenAI API errors: Propagated without modification
        """
        if not messages:
            raise ValueError("messages is required and cannot be empty")

        decision = self.optimizer.should_process_request(user_id, tier, self.use_case)
        if not decision.allowed:
            if decision.reason == DenialReason.RATE_LIMITED:
                raise RateLimitedError(
                    f"Too many requests. Please wait {decision.retry_after_ms}ms before retrying.",
                    decision,
                )
            raise QuotaExceededError("Usage limit reached for your plan.", decision)

        content = "\n".join(f"{m.get('role', '')}:{m.get('content', '')}" for m in messages)
        options = {"model": self.model, "temperature": temperature, "max_tokens": max_tokens, **kwargs}
        cache_key = self.optimizer.generate_cache_key(tier, self.use_case, content, options)

        cached = self.optimizer.get_cached_result(cache_key, tier)
        if cached is not None:
            return {**cached, "cached": True}

        response = self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            **kwargs
        )

        usage = response.usage
        prompt_tokens = usage.prompt_tokens if usage else 0
        completion_tokens = usage.completion_tokens if usage else 0
        if not usage:
            logger.warning("OpenAI response %s missing usage information", response.id)

        self.optimizer.track_usage(user_id, tier, self.use_case, prompt_tokens, completion_tokens)

        result = {
            "id": response.id,
            "content": response.choices[0].message.content,
            "usage": {
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
            },
        }
        self.optimizer.cache_result(cache_key, result, tier)
        return {**result, "cached": False}
