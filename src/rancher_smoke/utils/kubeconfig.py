"""Helpers for showing a kubeconfig without leaking its secrets."""

from typing import Any

import yaml

from rancher_smoke.utils.logging import get_logger

logger = get_logger(__name__)


def summarize_kubeconfig(content: str) -> dict[str, Any]:
    """Describe a kubeconfig by its non-secret parts.

    Args:
        content: Kubeconfig YAML text

    Returns:
        Dictionary with current context, context names, server URLs and size.
        Unparseable content yields only the size.
    """
    summary: dict[str, Any] = {"bytes": len(content.encode())}

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        logger.warning("kubeconfig_not_yaml", error=str(e))
        return summary

    if not isinstance(data, dict):
        return summary

    summary["current_context"] = data.get("current-context") or ""
    summary["contexts"] = [
        c.get("name", "") for c in data.get("contexts") or [] if isinstance(c, dict)
    ]
    summary["servers"] = [
        (c.get("cluster") or {}).get("server", "")
        for c in data.get("clusters") or []
        if isinstance(c, dict)
    ]
    return summary
