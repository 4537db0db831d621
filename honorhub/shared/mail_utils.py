"""Mail helper utilities."""

from __future__ import annotations

import html
import logging
import re
from collections.abc import Iterable, Mapping, Sequence

logger = logging.getLogger("honorhub.mailer")

_SPLIT_RE = re.compile(r"[;,]")
_WHITESPACE_RE = re.compile(r"\s+")

PLACEHOLDER_TOKENS: tuple[str, ...] = (
    "{tier}",
    "{employee_name}",
    "{custom_message}",
    "{sender_name}",
    "{company_name}",
)


def _iter_tokens(recipients: Sequence[str] | str | None) -> Iterable[str]:
    if recipients is None:
        return []
    if isinstance(recipients, str):
        return (part for part in _SPLIT_RE.split(recipients))
    return (str(value) for value in recipients)


def normalize_recipients(recipients: Sequence[str] | str | None) -> tuple[list[str], str]:
    """Normalize recipient entries for SMTP envelopes and headers."""

    seen: set[str] = set()
    kept: list[str] = []

    for raw in _iter_tokens(recipients):
        candidate = (raw or "").strip()
        if not candidate:
            continue
        normalized = candidate.lower()
        if (
            "@" not in normalized
            or "." not in normalized.split("@")[-1]
            or any(ch.isspace() for ch in normalized)
        ):
            logger.warning("[MAIL-INVALID-RECIPIENT] token=%s", candidate)
            continue
        if normalized in seen:
            continue
        seen.add(normalized)
        kept.append(candidate)

    header = ", ".join(kept)
    return kept, header


def substitute_placeholders(template: str, values: Mapping[str, str | None]) -> str:
    """Replace every occurrence of each ``{token}`` with its value.

    Missing values render as an empty string. Unknown braces are left alone.
    """

    rendered = template or ""
    for token, value in values.items():
        rendered = rendered.replace(token, value or "")
    return rendered


def unescape_newlines(text: str) -> str:
    """Turn the stored two-character ``\\n`` sequence into real line breaks."""
    return (text or "").replace("\\n", "\n")


def body_to_html(body: str) -> str:
    paragraphs = "".join(
        f"<p>{html.escape(line) if line else '&nbsp;'}</p>" for line in body.split("\n")
    )
    return (
        '<div style="font-family: Arial, sans-serif; line-height: 1.6;">'
        f"{paragraphs}</div>"
    )


def attachment_filename(employee_name: str | None) -> str:
    stem = _WHITESPACE_RE.sub("_", (employee_name or "").strip()) or "Recipient"
    return f"Certificate_{stem}.pdf"


def format_from(name: str | None, address: str | None) -> str:
    if name and address:
        return f"{name} <{address}>"
    return address or name or ""
