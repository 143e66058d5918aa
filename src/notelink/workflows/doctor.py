from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import RuleConfigError
from .link_utils import proxy_base_url
from .settings import NotelinkSettings, load_transformation_config
from .url_transform import TRANSFORM_PREFIX, ProbeFunc


def _check_writable(path: Path) -> bool:
    try:
        if path.exists():
            return os.access(path, os.W_OK)
        parent = path.parent
        if not parent.exists():
            return False
        return os.access(parent, os.W_OK)
    except OSError:
        return False


def build_doctor_report(settings: NotelinkSettings, *, probe: Optional[ProbeFunc] = None) -> Dict[str, Any]:
    report: Dict[str, Any] = {
        "generated_at": datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
        "ok": True,
        "checks": [],
    }

    def add_check(
        name: str,
        status: bool,
        *,
        detail: Optional[str] = None,
        remedy: Optional[str] = None,
        level: str = "warn",
    ) -> None:
        entry = {
            "name": name,
            "status": "ok" if status else "missing",
            "level": level,
            "detail": detail,
        }
        if remedy:
            entry["remedy"] = remedy
        report["checks"].append(entry)
        if not status and level == "warn":
            report["ok"] = False

    vault = settings.vault_root
    add_check(
        "NOTELINK_VAULT_ROOT",
        vault.is_dir() and _check_writable(vault),
        detail=str(vault),
        remedy="Point NOTELINK_VAULT_ROOT (or --vault) at a writable notes directory.",
    )

    if settings.active_note:
        active_ok = (vault / settings.active_note).is_file()
        add_check(
            "NOTELINK_ACTIVE_NOTE",
            active_ok,
            detail=settings.active_note,
            remedy="Set NOTELINK_ACTIVE_NOTE to a note path relative to the vault.",
        )
    else:
        add_check("NOTELINK_ACTIVE_NOTE", False, detail="No active note configured", level="info")

    try:
        config = load_transformation_config(settings.rules_path)
    except RuleConfigError as exc:
        add_check(
            "NOTELINK_RULES_PATH",
            False,
            detail=str(exc),
            remedy="Fix the rule file or set NOTELINK_RULES_PATH to a valid JSON rule file.",
        )
        return report

    enabled = config.enabled_rules
    add_check(
        "NOTELINK_RULES_PATH",
        True,
        detail=f"{settings.rules_path} ({len(enabled)} of {len(config.rules)} rules enabled)",
        level="info",
    )

    proxies: List[str] = []
    for rule in enabled:
        if rule.transformation_type != TRANSFORM_PREFIX:
            continue
        try:
            base = proxy_base_url(rule.template.replace("{url}", ""))
        except ValueError:
            add_check(f"rule:{rule.id}", False, detail=f"template has no proxy host: {rule.template}")
            continue
        if base not in proxies:
            proxies.append(base)

    for base in proxies:
        if probe is None:
            add_check(f"proxy:{base}", True, detail="not probed", level="info")
            continue
        try:
            healthy = bool(probe(base, config.proxy_health_timeout_ms / 1000.0))
            detail = "reachable" if healthy else "unhealthy; rewrites will fall back to the original URL"
        except Exception as exc:
            healthy = False
            detail = f"probe failed: {exc}"
        add_check(f"proxy:{base}", healthy, detail=detail, level="info")

    return report


def format_doctor_report(report: Dict[str, Any]) -> str:
    lines: List[str] = []
    lines.append("notelink doctor")
    lines.append(f"Generated: {report.get('generated_at')}")
    lines.append("")
    for check in report.get("checks", []):
        name = check.get("name", "check")
        status = check.get("status", "unknown")
        level = check.get("level", "info")
        lines.append(f"- [{level}] {name}: {status}")
        detail = check.get("detail")
        if detail:
            lines.append(f"  detail: {detail}")
        remedy = check.get("remedy")
        if remedy:
            lines.append(f"  remedy: {remedy}")
    return "\n".join(lines).rstrip() + "\n"
