"""Rule-driven URL rewriting with a health-checked proxy layer.

A rule rewrites a URL either by wrapping it in a proxy/reader endpoint
(``prefix``) or by pulling an identifier out of it into a canonical URL
(``path-extraction``). Exactly one rule applies per URL: the enabled,
matching rule with the highest ``priority``, ties going to the rule declared
first.

Matchers are case-insensitive substrings of the URL. Every rule uses the
same semantic; there is no regex or prefix-only mode.

Prefix rules point at a proxy, so their target is probed before use and the
outcome is cached per proxy base URL for ``proxy_health_cache_ttl_minutes``.
A dead proxy, or any error while rendering or probing, falls back to the
original URL with ``proxy_healthy=False``.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import urlparse

import requests

from .errors import RuleConfigError
from .link_utils import last_path_segment, proxy_base_url
from .notelink_config import DEFAULT_PROXY_TIMEOUT_MS, DEFAULT_PROXY_TTL_MINUTES

logger = logging.getLogger(__name__)

TRANSFORM_PREFIX = "prefix"
TRANSFORM_PATH_EXTRACTION = "path-extraction"
TRANSFORMATION_TYPES = (TRANSFORM_PREFIX, TRANSFORM_PATH_EXTRACTION)

URL_PLACEHOLDER = "{url}"
PATH_PLACEHOLDERS = ("{segment}", "{path}", "{query}", "{host}")
# Placeholders that must resolve to a non-empty value when used.
_REQUIRED_PLACEHOLDERS = ("{segment}", "{path}", "{host}")
_INT_TEXT_RE = re.compile(r"^[-+]?\d+$")

ProbeFunc = Callable[[str, float], bool]


def _as_bool(value: Any, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        normalized = value.strip().lower()
        if not normalized:
            return default
        return normalized not in {"0", "false", "off", "no"}
    return bool(value)


def _as_priority(value: Any) -> Optional[int]:
    """Integer priority, or ``None`` when ``value`` is not a whole number."""

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str) and _INT_TEXT_RE.match(value.strip()):
        return int(value.strip())
    return None


@dataclass(frozen=True)
class TransformationRule:
    id: str
    name: str
    enabled: bool
    matchers: Tuple[str, ...]
    transformation_type: str
    template: str
    priority: int = 0

    def matches(self, url: str) -> bool:
        if not self.enabled:
            return False
        lowered = (url or "").lower()
        for matcher in self.matchers:
            token = (matcher or "").strip().lower()
            if token and token in lowered:
                return True
        return False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], index: int = 0) -> "TransformationRule":
        if not isinstance(data, Mapping):
            raise RuleConfigError(f"rule #{index + 1} must be an object")
        rule_id = str(data.get("id") or f"rule-{index + 1}")
        ttype = data.get("transformationType", data.get("transformation_type"))
        if ttype not in TRANSFORMATION_TYPES:
            raise RuleConfigError(
                f"rule {rule_id}: transformationType must be one of {', '.join(TRANSFORMATION_TYPES)}, got {ttype!r}"
            )
        template = data.get("template")
        if not isinstance(template, str) or not template.strip():
            raise RuleConfigError(f"rule {rule_id}: template must be a non-empty string")
        matchers = data.get("matchers") or []
        if isinstance(matchers, str):
            matchers = [matchers]
        if not isinstance(matchers, (list, tuple)):
            raise RuleConfigError(f"rule {rule_id}: matchers must be a list of strings")
        priority = _as_priority(data.get("priority", 0))
        if priority is None:
            raise RuleConfigError(f"rule {rule_id}: priority must be an integer, got {data.get('priority')!r}")
        return cls(
            id=rule_id,
            name=str(data.get("name") or rule_id),
            enabled=_as_bool(data.get("enabled"), True),
            matchers=tuple(str(m) for m in matchers if str(m).strip()),
            transformation_type=str(ttype),
            template=template.strip(),
            priority=priority,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "enabled": self.enabled,
            "matchers": list(self.matchers),
            "transformationType": self.transformation_type,
            "template": self.template,
            "priority": self.priority,
        }


@dataclass
class TransformationConfig:
    """Rules plus proxy health settings."""

    rules: List[TransformationRule] = field(default_factory=list)
    proxy_health_cache_ttl_minutes: float = DEFAULT_PROXY_TTL_MINUTES
    proxy_health_timeout_ms: int = DEFAULT_PROXY_TIMEOUT_MS

    @classmethod
    def from_dict(cls, data: Any) -> "TransformationConfig":
        if isinstance(data, list):
            data = {"rules": data}
        if not isinstance(data, Mapping):
            raise RuleConfigError("rule config must be an object or a list of rules")
        raw_rules = data.get("rules") or []
        if not isinstance(raw_rules, list):
            raise RuleConfigError("'rules' must be a list")
        rules = [TransformationRule.from_dict(item, idx) for idx, item in enumerate(raw_rules)]
        seen: Dict[str, int] = {}
        for rule in rules:
            seen[rule.id] = seen.get(rule.id, 0) + 1
        duplicates = sorted(rule_id for rule_id, count in seen.items() if count > 1)
        if duplicates:
            raise RuleConfigError(f"duplicate rule id(s): {', '.join(duplicates)}")
        ttl = data.get("proxyHealthCacheTtlMinutes", data.get("proxy_health_cache_ttl_minutes"))
        timeout = data.get("proxyHealthTimeoutMs", data.get("proxy_health_timeout_ms"))
        try:
            ttl_value = float(ttl) if ttl is not None else DEFAULT_PROXY_TTL_MINUTES
            timeout_value = int(timeout) if timeout is not None else DEFAULT_PROXY_TIMEOUT_MS
        except (TypeError, ValueError):
            raise RuleConfigError("proxy health settings must be numeric") from None
        if ttl_value < 0 or timeout_value <= 0:
            raise RuleConfigError("proxy health TTL must be >= 0 and timeout > 0")
        return cls(
            rules=rules,
            proxy_health_cache_ttl_minutes=ttl_value,
            proxy_health_timeout_ms=timeout_value,
        )

    @property
    def enabled_rules(self) -> List[TransformationRule]:
        return [rule for rule in self.rules if rule.enabled]


@dataclass
class TransformationResult:
    original_url: str
    transformed_url: Optional[str]
    applied_rule: Optional[str] = None
    proxy_healthy: bool = True
    error: Optional[str] = None

    @property
    def url(self) -> str:
        """URL to fetch: the rewrite when present, else the original."""

        return self.transformed_url or self.original_url

    @property
    def rewritten(self) -> bool:
        return bool(self.transformed_url) and self.transformed_url != self.original_url

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "originalUrl": self.original_url,
            "transformedUrl": self.transformed_url,
            "proxyHealthy": self.proxy_healthy,
        }
        if self.applied_rule:
            payload["appliedRule"] = self.applied_rule
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass(frozen=True)
class ProxyHealthEntry:
    healthy: bool
    last_checked: int  # epoch milliseconds


class ProxyHealthCache:
    """Per-proxy reachability results, stale after a TTL.

    Not thread-safe: callers that probe from several threads must serialize
    read-modify-write per proxy base URL.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: Dict[str, ProxyHealthEntry] = {}

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    def lookup(self, base_url: str, ttl_minutes: float) -> Optional[ProxyHealthEntry]:
        """Return the entry for ``base_url`` unless it is missing or stale."""

        entry = self._entries.get(base_url)
        if entry is None:
            return None
        age_ms = self.now_ms() - entry.last_checked
        if age_ms > ttl_minutes * 60_000:
            return None
        return entry

    def store(self, base_url: str, healthy: bool) -> ProxyHealthEntry:
        entry = ProxyHealthEntry(healthy=bool(healthy), last_checked=self.now_ms())
        self._entries[base_url] = entry
        return entry

    def clear(self) -> None:
        self._entries.clear()

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        return {
            base: {"healthy": entry.healthy, "lastChecked": entry.last_checked}
            for base, entry in self._entries.items()
        }

    def __contains__(self, base_url: object) -> bool:
        return base_url in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def probe_proxy(base_url: str, timeout: float) -> bool:
    """Lightweight reachability check: any non-5xx answer counts as healthy."""

    resp = requests.head(base_url, timeout=timeout, allow_redirects=True)
    return resp.status_code < 500


def select_rule(url: str, rules: Iterable[TransformationRule]) -> Optional[TransformationRule]:
    matching = [rule for rule in rules if rule.matches(url)]
    if not matching:
        return None
    # max() keeps the first of equally ranked items, i.e. declaration order.
    return max(matching, key=lambda rule: rule.priority)


def _render_path_extraction(template: str, url: str) -> str:
    parsed = urlparse(url)
    values = {
        "{segment}": last_path_segment(url) or "",
        "{path}": parsed.path.strip("/"),
        "{query}": parsed.query,
        "{host}": parsed.hostname or "",
    }
    used = [placeholder for placeholder in PATH_PLACEHOLDERS if placeholder in template]
    if not used:
        if not values["{segment}"]:
            raise ValueError(f"no path segment to extract from {url!r}")
        return template + values["{segment}"]
    for placeholder in used:
        if placeholder in _REQUIRED_PLACEHOLDERS and not values[placeholder]:
            raise ValueError(f"{placeholder} is empty for {url!r}")
    rendered = template
    for placeholder in used:
        rendered = rendered.replace(placeholder, values[placeholder])
    return rendered


def apply_rule(rule: TransformationRule, url: str) -> str:
    if rule.transformation_type == TRANSFORM_PREFIX:
        if URL_PLACEHOLDER in rule.template:
            return rule.template.replace(URL_PLACEHOLDER, url)
        return rule.template + url
    if rule.transformation_type == TRANSFORM_PATH_EXTRACTION:
        return _render_path_extraction(rule.template, url)
    raise ValueError(f"unknown transformation type {rule.transformation_type!r}")


def _proxy_is_healthy(
    base_url: str,
    config: TransformationConfig,
    cache: ProxyHealthCache,
    probe: ProbeFunc,
) -> bool:
    entry = cache.lookup(base_url, config.proxy_health_cache_ttl_minutes)
    if entry is not None:
        return entry.healthy
    try:
        healthy = bool(probe(base_url, config.proxy_health_timeout_ms / 1000.0))
    except Exception:
        cache.store(base_url, False)
        raise
    cache.store(base_url, healthy)
    logger.debug("probed proxy %s: healthy=%s", base_url, healthy)
    return healthy


def transform_url(
    url: str,
    config: TransformationConfig,
    cache: ProxyHealthCache,
    *,
    probe: Optional[ProbeFunc] = None,
) -> TransformationResult:
    """Rewrite ``url`` with the winning rule, never through a dead proxy."""

    original = url or ""
    if not original.strip():
        return TransformationResult(original_url=original, transformed_url=None, error="empty url")

    rule = select_rule(original, config.rules)
    if rule is None:
        return TransformationResult(original_url=original, transformed_url=original)

    base_url: Optional[str] = None
    try:
        candidate = apply_rule(rule, original)
        if rule.transformation_type != TRANSFORM_PREFIX:
            return TransformationResult(
                original_url=original,
                transformed_url=candidate,
                applied_rule=rule.id,
            )
        base_url = proxy_base_url(candidate)
        healthy = _proxy_is_healthy(base_url, config, cache, probe or probe_proxy)
    except Exception as exc:
        logger.warning("rule %s failed for %s: %s", rule.id, original, exc)
        return TransformationResult(
            original_url=original,
            transformed_url=original,
            applied_rule=rule.id,
            proxy_healthy=False,
            error=f"{type(exc).__name__}: {exc}",
        )

    if not healthy:
        logger.info("proxy %s unhealthy; passing %s through unchanged", base_url, original)
        return TransformationResult(
            original_url=original,
            transformed_url=original,
            applied_rule=rule.id,
            proxy_healthy=False,
        )
    return TransformationResult(
        original_url=original,
        transformed_url=candidate,
        applied_rule=rule.id,
    )


class UrlTransformer:
    """Binds a config to a health cache so one batch shares probe results."""

    def __init__(
        self,
        config: TransformationConfig,
        cache: Optional[ProxyHealthCache] = None,
        probe: Optional[ProbeFunc] = None,
    ) -> None:
        self.config = config
        self.cache = cache if cache is not None else ProxyHealthCache()
        self._probe = probe or probe_proxy

    def transform(self, url: str) -> TransformationResult:
        return transform_url(url, self.config, self.cache, probe=self._probe)


__all__ = [
    "TRANSFORM_PREFIX",
    "TRANSFORM_PATH_EXTRACTION",
    "TRANSFORMATION_TYPES",
    "ProbeFunc",
    "ProxyHealthCache",
    "ProxyHealthEntry",
    "TransformationConfig",
    "TransformationResult",
    "TransformationRule",
    "UrlTransformer",
    "apply_rule",
    "probe_proxy",
    "select_rule",
    "transform_url",
]
