"""User-facing copy for fetch and membership notices."""

from __future__ import annotations

import httpx


def _ensure_sentence(text: str) -> str:
    """Return text with terminal sentence punctuation."""
    cleaned = text.strip()
    if not cleaned:
        return ""
    if cleaned.endswith((".", "!", "?")):
        return cleaned
    return f"{cleaned}."


def build_next_step_hint(next_step: str) -> str:
    """Build a canonical next-step guidance line."""
    return f"Next step: {_ensure_sentence(next_step)}"


def build_actionable_error(
    action: str,
    *,
    next_step: str,
    why: str | None = None,
) -> str:
    """Build a 2-3 line actionable error message."""
    lines = [f"Could not {action.strip()}."]
    if why:
        lines.append(f"Why: {_ensure_sentence(why)}")
    lines.append(build_next_step_hint(next_step))
    return "\n".join(lines)


def describe_http_failure(action: str, exc: Exception) -> str:
    """Map an httpx/transport exception to an actionable message."""
    if isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code
        if status_code == 429:
            return build_actionable_error(
                action,
                why="the directory server is rate limiting requests (HTTP 429)",
                next_step="wait a few seconds and pull to refresh",
            )
        if status_code >= 500:
            return build_actionable_error(
                action,
                why=f"the directory server is unavailable right now (HTTP {status_code})",
                next_step="retry in a minute",
            )
        return build_actionable_error(
            action,
            why=f"the directory server rejected the request (HTTP {status_code})",
            next_step="adjust the search or filters and retry",
        )
    if isinstance(exc, httpx.TimeoutException):
        return build_actionable_error(
            action,
            why="the request timed out",
            next_step="check connectivity and retry",
        )
    return build_actionable_error(
        action,
        why="a network error occurred",
        next_step="check connectivity and retry",
    )


def build_malformed_response_error(action: str) -> str:
    """Message for a response body that is not a recognised envelope."""
    return build_actionable_error(
        action,
        why="the server returned a response in an unexpected format",
        next_step="retry, and report the problem if it persists",
    )


def build_membership_notice(operation: str, name: str, *, rolled_back: bool) -> str:
    """Non-fatal notice shown when a team add/remove fails."""
    verb = "add" if operation == "add" else "remove"
    target = name or "this member"
    preposition = "to" if verb == "add" else "from"
    why = (
        "the server rejected the change, so it was undone"
        if rolled_back
        else "the server rejected the change; the list may be out of date until it reloads"
    )
    return build_actionable_error(
        f"{verb} {target} {preposition} your team",
        why=why,
        next_step="try again",
    )


__all__ = [
    "build_actionable_error",
    "build_malformed_response_error",
    "build_membership_notice",
    "build_next_step_hint",
    "describe_http_failure",
]
