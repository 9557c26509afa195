"""
Result cache.

Content-addressed memoization of model results. The cache can always be
bypassed: a disabled tier, a store outage or a miss all return None and
the caller recomputes, so only latency and cost change.
"""

import hashlib
import json
import logging
from typing import Any, Mapping, Optional

from ai_cost_meter.storage.base import KeyValueStore

from .metrics import AggregateMetrics
from .tiers import TIER_TABLE, TierTable

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "nlp-tool"


def normalize_content(content: str) -> str:
    """Canonical form of request content: unified newlines, outer whitespace trimmed."""
    return content.replace("\r\n", "\n").replace("\r", "\n").strip()


def _stringify_keys(value: Any) -> Any:
    # json.dumps cannot sort mixed-type keys
    if isinstance(value, Mapping):
        return {str(k): _stringify_keys(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_stringify_keys(v) for v in value]
    return value


def fingerprint_digest(tier: str, use_case: str, content: str, options: Optional[Mapping[str, Any]] = None) -> str:
    """SHA-256 over a canonical JSON encoding of the inputs.

    Keys are sorted at every nesting level, so option insertion order never
    affects the digest. Option keys are compared as strings, so 1 and "1"
    name the same option.
    """
    canonical = json.dumps(
        {
            "tier": tier,
            "useCase": use_case,
            "content": normalize_content(content),
            "options": _stringify_keys(dict(options or {})),
        },
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class ResultCache:
    """Tier-aware cache over a key-value store."""

    def __init__(
        self,
        store: KeyValueStore,
        metrics: Optional[AggregateMetrics] = None,
        tiers: TierTable = TIER_TABLE,
        prefix: str = DEFAULT_KEY_PREFIX,
    ):
        self.store = store
        self.metrics = metrics
        self.tiers = tiers
        self.prefix = prefix

    def key(self, tier: str, use_case: str, content: str, options: Optional[Mapping[str, Any]] = None) -> str:
        """Build the fingerprint for a unit of work.

        Returns:
            Key of the form '{prefix}:{tier}:{use_case}:{sha256}'
        """
        tier_name = self.tiers.resolve(tier).name
        digest = fingerprint_digest(tier_name, use_case, content, options)
        return f"{self.prefix}:{tier_name}:{use_case}:{digest}"

    def get(self, fingerprint: str, tier: str) -> Optional[Any]:
        """Look up a previously stored payload.

        Returns:
            The payload, or None when caching is disabled, the store fails
            or nothing is stored under the fingerprint
        """
        policy = self.tiers.resolve(tier)
        if not policy.cache_enabled:
            return None

        try:
            cached = self.store.get(fingerprint)
        except Exception:
            logger.exception("Error getting cached result for %s", fingerprint)
            return None

        if cached is None:
            if self.metrics is not None:
                self.metrics.record_cache_miss()
            return None

        try:
            payload = json.loads(cached)
        except ValueError:
            logger.warning("Discarding undecodable cache entry %s", fingerprint)
            if self.metrics is not None:
                self.metrics.record_cache_miss()
            return None

        if self.metrics is not None:
            self.metrics.record_cache_hit()
        return payload

    def put(self, fingerprint: str, payload: Any, tier: str) -> bool:
        """Store a payload under the tier's TTL, replacing any previous entry.

        Returns:
            True if the payload was written
        """
        policy = self.tiers.resolve(tier)
        if not policy.cache_enabled:
            return False

        try:
            encoded = json.dumps(payload, default=str)
            self.store.set_with_expiry(fingerprint, encoded, policy.cache_ttl_seconds)
        except Exception:
            logger.exception("Error caching result for %s", fingerprint)
            return False
        return True
