"""Catalogue of admin-ops actions and the entities they operate on."""
from __future__ import annotations

import re

ADMIN_OPS_PLUGIN_ID = "admin.ops.v1"

ENTITY_LABELS: dict[str, str] = {
    "school": "学校",
    "class": "班级",
    "teacher": "教师",
    "student": "学生",
    "academic_year": "学年",
    "grade": "年级",
    "subject": "学科",
    "assignment": "作业",
    "question": "题目",
    "submission": "提交",
    "submission_question": "作答题目",
}

ENTITY_PLURALS: dict[str, str] = {
    "school": "schools",
    "class": "classes",
    "teacher": "teachers",
    "student": "students",
    "academic_year": "academic_years",
    "grade": "grades",
    "subject": "subjects",
    "assignment": "assignments",
    "question": "questions",
    "submission": "submissions",
    "submission_question": "submission_questions",
}

IMPORTABLE_ENTITIES = frozenset(
    {"school", "class", "teacher", "student", "academic_year", "grade", "subject"}
)
BULK_DELETABLE_ENTITIES = frozenset({"student", "school", "academic_year", "grade", "subject"})
MUTABLE_ENTITIES = frozenset(ENTITY_PLURALS) - {"submission", "submission_question"}

MUTATION_OPERATIONS = ("create", "update", "delete")

ENTITY_RESOLVE_ACTION = "admin.entity.resolve"
SQL_PATCH_PREVIEW_ACTION = "admin.sql_patch.preview"
SQL_PATCH_EXECUTE_ACTION = "admin.sql_patch.execute"
SQL_PATCH_ACK = "I_UNDERSTAND_THIS_WRITES_DB"
TENANT_PLACEHOLDER = "__TENANT_ID__"

_TENANT_KEY_PATTERN = re.compile(r"^uploads/tenant-(\d+)/")


def entity_label(entity_type: str) -> str:
    key = str(entity_type or "").strip()
    return ENTITY_LABELS.get(key) or key or "实体"


def _require_entity(entity_type: str, allowed: frozenset[str] | None = None) -> str:
    key = str(entity_type or "").strip()
    if key not in ENTITY_PLURALS or (allowed is not None and key not in allowed):
        raise ValueError(f"unsupported entity type: {entity_type!r}")
    return key


def list_action_id(entity_type: str) -> str:
    key = _require_entity(entity_type)
    return f"admin.list.{ENTITY_PLURALS[key]}"


def mutation_action_id(operation: str, entity_type: str) -> str:
    if operation not in MUTATION_OPERATIONS:
        raise ValueError(f"unsupported operation: {operation!r}")
    key = _require_entity(entity_type, MUTABLE_ENTITIES)
    return f"admin.{operation}.{key}"


def import_action_id(entity_type: str) -> str:
    key = _require_entity(entity_type, IMPORTABLE_ENTITIES)
    return f"admin.import.{ENTITY_PLURALS[key]}"


def bulk_delete_action_id(entity_type: str, phase: str) -> str:
    if phase not in {"preview", "execute"}:
        raise ValueError(f"unsupported bulk delete phase: {phase!r}")
    key = _require_entity(entity_type, BULK_DELETABLE_ENTITIES)
    return f"admin.bulk_delete.{ENTITY_PLURALS[key]}.{phase}"


def requires_confirmation(action_id: str) -> bool:
    """Whether the backend rejects ``action_id`` without a confirmation token."""

    parts = action_id.split(".")
    if len(parts) < 2 or parts[0] != "admin":
        return True
    verb = parts[1]
    if verb in {"list", "entity"}:
        return False
    if verb in {"bulk_delete", "sql_patch"}:
        return parts[-1] == "execute"
    return True


def import_csv_sensitivity(entity_type: str) -> str:
    return "student_personal" if entity_type == "student" else "restricted"


def tenant_id_from_object_key(object_key: str) -> int | None:
    match = _TENANT_KEY_PATTERN.match(object_key or "")
    if not match:
        return None
    return int(match.group(1))


def substitute_tenant_placeholder(text: str, object_key: str) -> str:
    """Replace the tenant placeholder with the tenant encoded in ``object_key``."""

    tenant_id = tenant_id_from_object_key(object_key)
    if not tenant_id or TENANT_PLACEHOLDER not in text:
        return text
    return text.replace(TENANT_PLACEHOLDER, str(tenant_id))
