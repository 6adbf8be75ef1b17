from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional

try:
    from constants import MAX_MUSICXML_BYTES
except ImportError:
    from .constants import MAX_MUSICXML_BYTES

ROOT_TAGS = ("score-partwise", "score-timewise")
FENCE_OPEN_RE = re.compile(r"^```[a-zA-Z]*\n?")


def is_well_formed(xml: str) -> bool:
    try:
        ET.fromstring(xml.encode("utf-8"))
    except ET.ParseError:
        return False
    return True


def is_likely_musicxml(xml: str) -> bool:
    if not xml or not xml.strip().startswith("<?xml"):
        return False
    lowered = xml.lower()
    if not any(f"<{tag}" in lowered for tag in ROOT_TAGS):
        return False
    if len(xml.encode("utf-8")) > MAX_MUSICXML_BYTES:
        return False
    return is_well_formed(xml.strip())


def try_extract_musicxml(text: str) -> Optional[str]:
    if not text:
        return None
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = FENCE_OPEN_RE.sub("", cleaned, count=1)
        if cleaned.endswith("```"):
            cleaned = cleaned[:-3]
    start = cleaned.find("<?xml")
    if start == -1:
        return None
    cleaned = cleaned[start:]

    lowered = cleaned.lower()
    end = -1
    for tag in ROOT_TAGS:
        closing = f"</{tag}>"
        index = lowered.rfind(closing)
        if index != -1:
            end = max(end, index + len(closing))
    candidate = cleaned[:end] if end != -1 else cleaned.rstrip()
    return candidate if is_well_formed(candidate) else None


def part_id_mismatches(xml: str) -> List[Dict[str, Optional[str]]]:
    root = ET.fromstring(xml.encode("utf-8"))
    listed = [score_part.get("id") for score_part in root.iter("score-part")]
    parts = [part.get("id") for part in root.findall("part")]
    mismatches: List[Dict[str, Optional[str]]] = []
    for index in range(max(len(listed), len(parts))):
        listed_id = listed[index] if index < len(listed) else None
        part_id = parts[index] if index < len(parts) else None
        if listed_id != part_id:
            mismatches.append({"index": str(index), "part_list": listed_id, "part": part_id})
    return mismatches


def accept_musicxml(text: str) -> Optional[str]:
    xml = text.strip() if text else ""
    if not is_likely_musicxml(xml):
        xml = try_extract_musicxml(text) or ""
        if not is_likely_musicxml(xml):
            return None
    if part_id_mismatches(xml):
        return None
    return xml
