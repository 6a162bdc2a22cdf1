from __future__ import annotations

import pytest

from workbench.core.actions import (
    bulk_delete_action_id,
    entity_label,
    import_action_id,
    list_action_id,
    mutation_action_id,
    requires_confirmation,
)
from workbench.core.csv_source import (
    csv_url_candidates,
    is_signature_mismatch,
    sanitize_csv_filename,
    sanitize_import_defaults,
)
from workbench.core.settings import TimeoutPolicy, WorkbenchSettings


def test_action_ids():
    assert list_action_id("academic_year") == "admin.list.academic_years"
    assert mutation_action_id("delete", "class") == "admin.delete.class"
    assert import_action_id("student") == "admin.import.students"
    assert bulk_delete_action_id("school", "preview") == "admin.bulk_delete.schools.preview"
    assert entity_label("teacher") == "教师"
    assert entity_label("widget") == "widget"

    with pytest.raises(ValueError):
        import_action_id("submission")
    with pytest.raises(ValueError):
        bulk_delete_action_id("class", "execute")


@pytest.mark.parametrize(
    "action_id, expected",
    [
        ("admin.list.schools", False),
        ("admin.entity.resolve", False),
        ("admin.bulk_delete.students.preview", False),
        ("admin.bulk_delete.students.execute", True),
        ("admin.sql_patch.preview", False),
        ("admin.sql_patch.execute", True),
        ("admin.create.school", True),
        ("admin.import.students", True),
        ("assignment.draft.save", True),
    ],
)
def test_requires_confirmation(action_id, expected):
    assert requires_confirmation(action_id) is expected


def test_timeout_policy_per_action_class():
    policy = TimeoutPolicy()

    assert policy.for_action("admin.list.students") == 15_000
    assert policy.for_action("admin.import.students") == 35 * 60_000
    assert policy.for_action("admin.bulk_delete.students.preview") == policy.list_ms
    assert policy.for_action("admin.sql_patch.execute") == 20_000
    assert policy.for_action("admin.update.class") == policy.mutation_ms


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("WORKBENCH_API_BASE_URL", "http://api.internal:9000/")
    monkeypatch.setenv("WORKBENCH_TIMEOUT_LIST_MS", "5000")
    monkeypatch.setenv("WORKBENCH_TIMEOUT_IMPORT_MS", "not-a-number")
    monkeypatch.setenv("API_CORS_ORIGINS", "https://a.test, https://b.test")

    settings = WorkbenchSettings.from_env()

    assert settings.base_url == "http://api.internal:9000"
    assert settings.timeouts.list_ms == 5_000
    assert settings.timeouts.import_ms == 35 * 60_000
    assert settings.cors_origins == ("https://a.test", "https://b.test")


def test_csv_url_candidates_unescape_markdown_links():
    assert csv_url_candidates("'<https://x.test/a.csv?a=1&amp;b=2>'") == ["https://x.test/a.csv?a=1&b=2"]
    assert csv_url_candidates("https://x.test/a.csv?a=1&amp;b=2") == [
        "https://x.test/a.csv?a=1&amp;b=2",
        "https://x.test/a.csv?a=1&b=2",
    ]
    assert csv_url_candidates("ftp://x.test/a.csv") == []
    assert csv_url_candidates("  ") == []


def test_signature_mismatch_detection():
    assert is_signature_mismatch(403, "<Code>SignatureDoesNotMatch</Code>") is True
    assert is_signature_mismatch(404, "SignatureDoesNotMatch") is False


def test_csv_filename_and_defaults():
    assert sanitize_csv_filename("student", "a/b") == "a_b.csv"
    assert sanitize_csv_filename("student", None, "https://x.test/dir/%E5%90%8D%E5%8D%95.csv?sig=1") == "名单.csv"
    assert sanitize_csv_filename("student").startswith("student_")

    assert sanitize_import_defaults("teacher", {"school_id": "4", "role": "JANITOR"}) == {"school_id": 4}
    assert sanitize_import_defaults("school", {"province": " 浙江 ", "tags": ["a", " ", 3]}) == {
        "province": "浙江",
        "tags": ["a", "3"],
    }
    assert sanitize_import_defaults("student", "nope") == {}
