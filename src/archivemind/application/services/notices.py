# File: src/archivemind/application/services/notices.py
"""
Message payloads for the notices the lifecycle posts: archive warnings, the tombstone
left before deletion, the restoration notice, and knowledge-base digests.

Channel notices are embed-style dicts accepted by the platform's send-message call.
Digests are HTML text for the Telegram knowledge-base chat.
"""

from datetime import datetime
from html import escape
from typing import Any, Dict, Iterable, List, Optional

from archivemind.domain.entities import DetectedResource, ResourceType, WarningType
from archivemind.infrastructure.db.models import utcnow

FOOTER = "Archivemind"
MAX_DIGEST_SAMPLES = 5
PREVIEW_CHARS = 100

WARNING_COLORS: Dict[WarningType, int] = {
    WarningType.SEVEN_DAYS: 0xF39C12,
    WarningType.THREE_DAYS: 0xE67E22,
    WarningType.ONE_DAY: 0xE74C3C,
    WarningType.FINAL: 0x8E44AD,
}

RESOURCE_EMOJI: Dict[ResourceType, str] = {
    ResourceType.FILE: "📁",
    ResourceType.LINK: "🔗",
    ResourceType.CODE: "💻",
    ResourceType.PIN: "📌",
    ResourceType.IMAGE: "🖼️",
    ResourceType.DOCUMENT: "📄",
}

TOMBSTONE_COLOR = 0x95A5A6
RESTORED_COLOR = 0x2ECC71

# Button custom ids; the interaction layer parses these back into channel ids.
POSTPONE_PREFIX = "postpone_archive_"
ARCHIVE_NOW_PREFIX = "archive_now_"

# Discord component constants
_ACTION_ROW = 1
_BUTTON = 2
_STYLE_PRIMARY = 1
_STYLE_DANGER = 4


def _days_label(days: float) -> str:
    if days >= 1:
        whole = int(round(days))
        return f"{whole} day" if whole == 1 else f"{whole} days"
    hours = max(1, int(round(days * 24)))
    return f"{hours} hours"


def warning_text(warning_type: WarningType, days_remaining: float) -> str:
    label = _days_label(days_remaining)
    if warning_type is WarningType.SEVEN_DAYS:
        return f"This channel will be archived in **{label}** due to inactivity."
    if warning_type is WarningType.THREE_DAYS:
        return f"⚠️ **Warning:** This channel will be archived in **{label}** if no activity is detected."
    if warning_type is WarningType.ONE_DAY:
        return f"🚨 **Final Notice:** This channel will be archived in **{label}** unless there is activity."
    if warning_type is WarningType.FINAL:
        return "🚨 **URGENT:** This channel will be archived within the next few hours due to prolonged inactivity."
    raise ValueError(f"Unhandled warning type: {warning_type}")


def _embed(title: str, description: str, color: int, fields: List[Dict[str, Any]],
           when: Optional[datetime] = None) -> Dict[str, Any]:
    return {
        "title": title,
        "description": description,
        "color": color,
        "fields": fields,
        "footer": {"text": FOOTER},
        "timestamp": (when or utcnow()).isoformat(),
    }


def _field(name: str, value: str) -> Dict[str, Any]:
    return {"name": name, "value": value, "inline": False}


def build_warning(channel_id: str, warning_type: WarningType, days_remaining: float,
                  postpone_days: int = 7) -> Dict[str, Any]:
    embed = _embed(
        "⚠️ Channel Archive Warning",
        warning_text(warning_type, days_remaining),
        WARNING_COLORS[warning_type],
        [
            _field("📊 Channel Activity",
                   f"This channel will be archived if no messages are sent within {_days_label(days_remaining)}."),
            _field("🔄 How to Prevent Archiving",
                   "Send a message in this channel to reset the inactivity timer, or postpone below."),
            _field("📦 What Happens When Archived",
                   "Important resources (files, links, code) are saved to the knowledge base first."),
        ],
    )
    buttons = [
        {
            "type": _BUTTON,
            "style": _STYLE_PRIMARY,
            "label": f"Postpone Archive (+{postpone_days} days)",
            "emoji": {"name": "⏰"},
            "custom_id": f"{POSTPONE_PREFIX}{channel_id}",
        },
        {
            "type": _BUTTON,
            "style": _STYLE_DANGER,
            "label": "Archive Now",
            "emoji": {"name": "📦"},
            "custom_id": f"{ARCHIVE_NOW_PREFIX}{channel_id}",
        },
    ]
    return {"embeds": [embed], "components": [{"type": _ACTION_ROW, "components": buttons}]}


def build_tombstone(resource_count: int, reason: Optional[str] = None) -> Dict[str, Any]:
    description = "This channel has been archived due to inactivity."
    if reason:
        description = f"This channel has been archived: {reason}"
    embed = _embed(
        "📦 Channel Archived",
        description,
        TOMBSTONE_COLOR,
        [
            _field("📊 Resources Rescued",
                   f"{resource_count} valuable resources have been saved to the knowledge base."),
            _field("🔄 Restoration", "This channel can be restored using the `/restore` command."),
        ],
    )
    return {"embeds": [embed]}


def build_restoration_notice(resource_count: int, archived_at: Optional[datetime] = None) -> Dict[str, Any]:
    fields = [
        _field("📊 Original Resources", f"{resource_count} resources were originally rescued from this channel."),
        _field("🔍 Access Resources", "Use `/find` to search for the original resources in the knowledge base."),
    ]
    if archived_at:
        fields.insert(0, _field("📅 Archived", archived_at.strftime("%Y-%m-%d %H:%M UTC")))
    embed = _embed(
        "🔄 Channel Restored",
        "This channel has been successfully restored from the archive.",
        RESTORED_COLOR,
        fields,
    )
    return {"embeds": [embed]}


def _preview(resource: DetectedResource) -> str:
    if resource.url:
        return resource.url
    if resource.content:
        text = resource.content
        return text if len(text) <= PREVIEW_CHARS else text[:PREVIEW_CHARS] + "..."
    return "No preview available"


def build_resource_digests(channel_name: str, resources: Iterable[DetectedResource],
                           when: Optional[datetime] = None) -> List[str]:
    """One HTML message per resource type, each with up to five samples."""
    grouped: Dict[ResourceType, List[DetectedResource]] = {}
    for resource in resources:
        grouped.setdefault(resource.type, []).append(resource)

    stamp = (when or utcnow()).strftime("%Y-%m-%d %H:%M")
    digests = []
    for rtype in ResourceType:
        items = grouped.get(rtype)
        if not items:
            continue
        lines = [
            f"📚 <b>Resources from #{escape(channel_name)}</b>",
            f"<b>Type:</b> {rtype.value} • <b>Count:</b> {len(items)}",
            f"📅 Archived {stamp}",
            "",
        ]
        for index, resource in enumerate(items[:MAX_DIGEST_SAMPLES], start=1):
            title = resource.file_name or f"{rtype.value} {index}"
            lines.append(f"{RESOURCE_EMOJI[rtype]} <b>{escape(title)}</b> by {escape(resource.author_name)}")
            lines.append(escape(_preview(resource)))
        if len(items) > MAX_DIGEST_SAMPLES:
            lines.append("")
            lines.append(f"... and {len(items) - MAX_DIGEST_SAMPLES} more. Use /find to search all resources.")
        digests.append("\n".join(lines))
    return digests
