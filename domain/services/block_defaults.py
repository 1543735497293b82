from __future__ import annotations

import copy
from typing import Any

_NEUTRAL_COLORS = {
    "text_color": "#d1d5db",
    "background_color": "transparent",
    "border_color": "transparent",
}

_CARD_COLORS = {
    "text_color": "#ffffff",
    "background_color": "#1a1a1a",
    "border_color": "#2a2a2a",
    "accent_color": "#3b82f6",
}

BLOCK_DEFAULTS: dict[str, dict[str, Any]] = {
    "paragraph": {"content": "", "alignment": "left", "emphasis": "normal", **_NEUTRAL_COLORS},
    "heading": {"text": "", "level": 1, "anchor": "", **_NEUTRAL_COLORS, "text_color": "#ffffff"},
    "list": {"items": [""], "ordered": False, **_NEUTRAL_COLORS},
    "quote": {"text": "", "author": "", "citation": "", **_NEUTRAL_COLORS, "border_color": "#4f46e5"},
    "code": {
        "code": "",
        "language": "javascript",
        "showLineNumbers": True,
        "text_color": "#d1d5db",
        "background_color": "#111827",
        "border_color": "#374151",
    },
    "figure": {"src": "", "alt": "", "caption": "", "width": "auto", **_NEUTRAL_COLORS},
    "callout": {
        "type": "info",
        "title": "",
        "content": "",
        "text_color": "#ffffff",
        "background_color": "rgba(59, 130, 246, 0.1)",
        "border_color": "#3b82f6",
        "accent_color": "#3b82f6",
    },
    "table": {
        "headers": ["Column 1", "Column 2"],
        "rows": [["", ""]],
        "sortable": False,
        "compact": False,
        **_NEUTRAL_COLORS,
        "border_color": "#2a2a2a",
    },
    "citation_list": {
        "title": "References",
        "citations": [],
        "citation_style": "apa",
        "numbered": True,
    },
    "poll": {
        "question": "",
        "options": ["Option 1", "Option 2"],
        "poll_type": "single_choice",
        "votes": [0, 0],
        "total_votes": 0,
        "allow_add_options": False,
        **_CARD_COLORS,
    },
    "reviewer_quote": {
        "quote": "",
        "author": "",
        "title": "",
        "institution": "",
        "avatar_url": "",
        **_CARD_COLORS,
        "accent_color": "#a855f7",
    },
    "snapshot_card": {
        "population": "",
        "intervention": "",
        "comparison": "",
        "outcome": "",
        "design": "",
        "key_findings": [],
        "evidence_level": "moderate",
        "recommendation_strength": "conditional",
        **_CARD_COLORS,
    },
    "number_card": {
        "number": "0",
        "label": "Metric",
        "description": "",
        "trend": "neutral",
        "percentage": 0,
        **_CARD_COLORS,
    },
    "divider": {"style": "gradient", "color": "#d1d5db", "thickness": 1},
    "diagram": {"title": "", "nodes": [], "connections": [], "canvas": {"width": 800, "height": 600}},
}


def default_payload(block_type: str) -> dict[str, Any]:
    return copy.deepcopy(BLOCK_DEFAULTS.get(block_type, _NEUTRAL_COLORS))
