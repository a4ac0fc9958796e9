"""Prompt construction and setting lookup for accessibility requests."""
from __future__ import annotations

from typing import Any, Dict, Optional
import json
import math
import re

STOPWORDS = frozenset({
    "the", "is", "to", "a", "and", "for", "on", "in", "of", "with",
    "set", "enable", "disable",
})

SYSTEM_PROMPT = """You are an assistant that only replies in JSON with the keys "message" and "command".
Sticking to this JSON format is essential.

You act as a computer accessibility coach. Reply to every request with a JSON object:
- "message": what you want to tell the user
- "command": the accessibility command to run, or an empty string when nothing should change

The reference JSON below lists the accessibility settings available on this
computer ({platform}). "current" is the value in use now; "lower_bound" and
"upper_bound" give the accepted range when one exists.

{reference}

Each request starts with the part of the reference JSON that most likely matches
what the user is asking about. Take the command from its "commands" field, append
the new value at the end, and use "current" to decide what that value should be.
Always reply with only the final JSON object, like:

{{
  "message": "...",
  "command": "..."
}}
"""


def tokenize(text: str) -> set[str]:
    words = re.split(r"[\s_\-]+", text.lower())
    return {word for word in (w.strip(".,!?;:'\"") for w in words) if word and word not in STOPWORDS}


def cosine_similarity(left: set[str], right: set[str]) -> float:
    if not left or not right:
        return 0.0
    return len(left & right) / (math.sqrt(len(left)) * math.sqrt(len(right)))


def find_best_match(prompt: str, reference: Dict[str, Any]) -> Optional[str]:
    """Name of the setting whose key best overlaps the prompt, if any overlaps at all."""
    prompt_tokens = tokenize(prompt)
    best: Optional[str] = None
    best_score = 0.0
    for name, entry in reference.items():
        commands = (entry or {}).get("commands") or {}
        if not any(commands.values()):
            continue
        score = cosine_similarity(prompt_tokens, tokenize(name))
        if score > best_score:
            best_score = score
            best = name
    return best


def build_system_prompt(platform: str, reference: Dict[str, Any]) -> str:
    return SYSTEM_PROMPT.format(platform=platform, reference=json.dumps(reference, indent=2))


def snippet_for(name: str, reference: Dict[str, Any]) -> str:
    return json.dumps({name: reference[name]}, indent=2)
