# classes/model_props.py
from __future__ import annotations

from typing import Any, Dict, Optional, Tuple


def is_openai_model(model_name) -> bool:
    # keep it simple; adjust if you start using exotic names
    prefixes = ("gpt-", "gpt4", "gpt-4", "gpt-5")
    return any(model_name.startswith(p) for p in prefixes)


def parse_model_name(raw: str) -> Tuple[str, Dict[str, Any]]:
    """Parse strings like:
        - 'gpt-4o-mini'
        - 'gpt-4o-mini_flex'
        - 'gpt-5.1_low_priority'
    into (base_model, openai_params).

    Suffix tokens are a reasoning effort (gpt-5 family only) and/or a service tier.
    """
    raw = (raw or "").strip()
    if not raw:
        raise ValueError("parse_model_name: No Model Name passed. ")

    parts = raw.split("_")
    base = parts[0]
    if len(parts) <= 1:
        return base, {}

    reasoning_effort: Optional[str] = None
    service_tier: Optional[str] = None

    reasoning_tokens = {"none", "minimal", "low", "medium", "high"}
    service_tier_tokens = {"auto", "default", "flex", "priority"}

    unknown = []
    for tok in parts[1:]:
        t = tok.strip().lower()
        if not t:
            continue

        if service_tier is None and t in service_tier_tokens:
            service_tier = t
            continue

        if reasoning_effort is None and t in reasoning_tokens and base.startswith("gpt-5"):
            reasoning_effort = t
            continue

        unknown.append(t)

    if unknown:
        raise ValueError(f"parse_model_name: Unknown model suffix token(s) {unknown} in '{raw}'. ")

    params: Dict[str, Any] = {}
    if reasoning_effort is not None:
        params.setdefault("reasoning", {})["effort"] = reasoning_effort
    if service_tier is not None:
        params["service_tier"] = service_tier

    return base, params
