"""Helpers for CSV files referenced from a conversation."""
from __future__ import annotations

import re
import time
from typing import Any
from urllib.parse import unquote, urlparse

_XML_ENTITIES = (
    ("&amp;", "&"),
    ("&#38;", "&"),
    ("&quot;", '"'),
    ("&#34;", '"'),
    ("&apos;", "'"),
    ("&#39;", "'"),
)
_HTTP_URL = re.compile(r"^https?://", re.IGNORECASE)
_SIGNATURE_MISMATCH = re.compile(r"signaturedoesnotmatch", re.IGNORECASE)

TEACHER_ROLES = frozenset({"TEACHER", "ADMIN", "PRINCIPAL"})


def csv_url_candidates(raw_url: str) -> list[str]:
    """Return plausible http(s) URLs for a link pasted into chat.

    Links copied out of rendered markdown often arrive quoted, wrapped in
    angle brackets or with ``&`` escaped as ``&amp;``.
    """

    trimmed = str(raw_url or "").strip()
    if not trimmed:
        return []

    unquoted = re.sub(r"^[\"'`]+|[\"'`]+$", "", trimmed).strip()
    de_xml = unquoted
    for entity, char in _XML_ENTITIES:
        de_xml = de_xml.replace(entity, char)
    de_xml = de_xml.strip()
    de_angle = re.sub(r"^<+|>+$", "", de_xml).strip()

    candidates = [unquoted]
    if de_xml and de_xml != unquoted:
        candidates.append(de_xml)
    if de_angle and de_angle != de_xml:
        candidates.append(de_angle)

    unique: list[str] = []
    for url in candidates:
        if _HTTP_URL.match(url) and url not in unique:
            unique.append(url)
    return unique


def is_signature_mismatch(status_code: int, body: str) -> bool:
    return status_code == 403 and bool(_SIGNATURE_MISMATCH.search(body or ""))


def sanitize_csv_filename(entity_type: str, filename: str | None = None, url: str | None = None) -> str:
    derived = str(filename or "").strip()
    if not derived and url:
        candidates = csv_url_candidates(url)
        if candidates:
            path = urlparse(candidates[0]).path
            segments = [segment for segment in path.split("/") if segment]
            derived = unquote(segments[-1]).strip() if segments else ""

    fallback = f"{entity_type}_{int(time.time() * 1000)}.csv"
    cleaned = (derived or fallback).replace("\\", "_").replace("/", "_").strip()
    if not cleaned:
        cleaned = fallback
    if not cleaned.lower().endswith(".csv"):
        cleaned = f"{cleaned}.csv"
    return cleaned


def _positive_int(value: Any) -> int | None:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def sanitize_import_defaults(entity_type: str, defaults: Any) -> dict[str, Any]:
    """Keep only the default columns the import action accepts for ``entity_type``."""

    if not isinstance(defaults, dict):
        return {}

    safe: dict[str, Any] = {}
    if entity_type == "school":
        province = str(defaults.get("province") or "").strip()
        city = str(defaults.get("city") or "").strip()
        raw_tags = defaults.get("tags")
        tags = [str(tag).strip() for tag in raw_tags if str(tag).strip()] if isinstance(raw_tags, list) else []
        if province:
            safe["province"] = province
        if city:
            safe["city"] = city
        if tags:
            safe["tags"] = tags
    elif entity_type == "teacher":
        school_id = _positive_int(defaults.get("school_id"))
        role = str(defaults.get("role") or "").strip()
        if school_id:
            safe["school_id"] = school_id
        if role in TEACHER_ROLES:
            safe["role"] = role
    elif entity_type == "class":
        school_id = _positive_int(defaults.get("school_id"))
        academic_year_id = _positive_int(defaults.get("academic_year_id"))
        education_level = str(defaults.get("education_level") or "").strip()
        if school_id:
            safe["school_id"] = school_id
        if academic_year_id:
            safe["academic_year_id"] = academic_year_id
        if education_level:
            safe["education_level"] = education_level
    elif entity_type == "student":
        class_id = _positive_int(defaults.get("class_id"))
        if class_id:
            safe["class_id"] = class_id
    return safe
