"""Static prompts for the control-loop value extractor."""
from __future__ import annotations

from typing import Sequence


def build_control_loop_prompt(tag: str) -> str:
    return (
        "You are a Control Loop Data Parser.\n"
        f'Your ONLY job is to extract numerical changes from log messages for loop "{tag}".\n\n'
        "Look for:\n"
        f'1. Set Point (SP) changes (e.g., "SP changed to 50", "Set 50.5", "Tag: {tag} SP")\n'
        f'2. Output (OP) changes (e.g., "Output 10%", "Manual 55", "Tag: {tag} CV")\n'
        '3. Mode changes (e.g., "Auto to Manual")\n\n'
        "Return a raw JSON array ONLY. No markdown, no explanation.\n"
        'Format: [{"timestamp": number, "type": "SP"|"OP"|"MODE", "old_val": number|null, "new_val": number|string}]\n\n'
        "If a log entry has no relevant control change, ignore it."
    )


def build_user_prompt(log_texts: Sequence[str]) -> str:
    return "Analyze these logs:\n" + "\n".join(log_texts)
