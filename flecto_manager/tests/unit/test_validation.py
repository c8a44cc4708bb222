from __future__ import annotations

import pytest
from pydantic import ValidationError

from flecto_manager.core.errors import ValidationFailedError
from flecto_manager.domain.types import AgentPayload, PagePayload, RedirectPayload
from flecto_manager.services.validation import (
    RedirectRules,
    RoleRules,
    ValidationIssue,
    ensure_valid,
    is_email,
    issues_from_error,
    validate_agent,
    validate_page,
    validate_project,
    validate_redirect,
    validate_role,
    validate_token_name,
    validate_user,
)


def _rules(issues) -> dict[str, str]:
    return {issue.field: issue.rule for issue in issues}


def test_valid_redirects_of_every_type() -> None:
    assert validate_redirect(RedirectPayload("basic", "/old", "/new", 301)) == []
    assert validate_redirect(RedirectPayload("basic_host", "example.com/old", "https://x.io/", 302)) == []
    assert validate_redirect(RedirectPayload("regex", "^/blog/(.*)$", "/news/$1", 307)) == []
    assert validate_redirect(RedirectPayload("regex_host", "^(www\\.)?example\\.com/.*$", "/", 308)) == []


def test_redirect_reports_missing_fields_and_unknown_enums() -> None:
    issues = validate_redirect(RedirectPayload("teleport", "", "", 404))
    assert _rules(issues) == {
        "status": "redirect_status",
        "target": "required",
        "type": "redirect_type",
        "source": "required",
    }


@pytest.mark.parametrize(
    ("redirect_type", "source", "rule"),
    [
        ("basic", "old", "basic_path"),
        ("basic_host", "/only-a-path", "basic_host"),
        ("basic_host", "example.com", "basic_host"),
        ("regex", "^/(unclosed$", "regex"),
    ],
)
def test_redirect_source_shape_per_type(redirect_type: str, source: str, rule: str) -> None:
    issues = validate_redirect(RedirectPayload(redirect_type, source, "/target", 301))
    assert _rules(issues) == {"source": rule}


def test_page_allows_empty_content_but_checks_path() -> None:
    assert validate_page(PagePayload("basic", "/robots.txt", "", "TEXT_PLAIN")) == []
    assert validate_page(PagePayload("basic_host", "example.com/sitemap.xml", "<urlset/>", "XML")) == []
    assert _rules(validate_page(PagePayload("basic", "robots.txt", "", "TEXT_PLAIN"))) == {"path": "basic_path"}
    assert _rules(validate_page(PagePayload("basic", "/x", "", "JSON"))) == {"content_type": "page_content_type"}


def test_agent_name_must_be_a_code() -> None:
    assert validate_agent(AgentPayload(name="edge-1", type="traefik", status="success")) == []
    issues = validate_agent(AgentPayload(name="edge 1", type="nginx", status="ok"))
    assert _rules(issues) == {"name": "code", "type": "agent_type", "status": "agent_status"}


def test_project_codes_and_lengths() -> None:
    assert validate_project(namespace_code="acme", project_code="web_1", name="Web") == []
    issues = validate_project(namespace_code="ac me", project_code="x" * 51, name="")
    assert _rules(issues) == {"namespace_code": "code", "project_code": "max=50", "name": "required"}


def test_usernames_accept_codes_and_emails() -> None:
    assert validate_user(username="alice", firstname="Alice", lastname="Doe") == []
    assert validate_user(username="alice@example.com", firstname="Alice", lastname="Doe") == []
    assert _rules(validate_user(username="alice smith", firstname="A", lastname="D")) == {"username": "username"}


def test_user_roles_may_carry_email_codes() -> None:
    assert validate_role(code="alice@example.com", role_type="user") == []
    assert _rules(validate_role(code="alice@example.com", role_type="role")) == {"code": "code"}
    assert _rules(validate_role(code="editors", role_type="group")) == {"type": "role_type"}


def test_token_name_rules() -> None:
    assert validate_token_name("ci-deploy") == []
    assert _rules(validate_token_name("")) == {"name": "required"}
    assert _rules(validate_token_name("n" * 301)) == {"name": "max=300"}


def test_ensure_valid_raises_with_every_issue() -> None:
    issues = validate_redirect(RedirectPayload("basic", "", "", 301))
    with pytest.raises(ValidationFailedError) as excinfo:
        ensure_valid(issues)
    assert {issue.field for issue in excinfo.value.issues} == {"source", "target"}
    ensure_valid([])


@pytest.mark.parametrize("value", ["alice@", "@example.com", "a@b", "alice@exa mple.com", "alice@@example.com"])
def test_malformed_email_usernames_are_rejected(value: str) -> None:
    assert is_email(value) is False
    assert _rules(validate_user(username=value, firstname="A", lastname="D")) == {"username": "username"}


def test_email_usernames_with_subdomains_and_tags() -> None:
    assert is_email("ops+alerts@mail.example.org") is True
    assert validate_user(username="ops+alerts@mail.example.org", firstname="Ops", lastname="Team") == []


def test_rules_models_validate_attribute_objects() -> None:
    rules = RedirectRules.model_validate(RedirectPayload("basic", "/old", "/new", 301), from_attributes=True)
    assert rules.source == "/old"
    assert rules.status == 301


def test_issues_from_error_maps_field_and_model_errors() -> None:
    with pytest.raises(ValidationError) as excinfo:
        RedirectRules.model_validate({"status": 301, "target": "/x", "type": "regex", "source": "(["})
    assert issues_from_error(excinfo.value) == [ValidationIssue(field="source", rule="regex", value="([")]

    with pytest.raises(ValidationError) as excinfo:
        RoleRules.model_validate({"type": "role"})
    assert issues_from_error(excinfo.value) == [ValidationIssue(field="code", rule="required", value=None)]


def test_first_failing_rule_wins_per_field() -> None:
    issues = validate_project(namespace_code="", project_code="web", name="n" * 300)
    assert issues == [
        ValidationIssue(field="namespace_code", rule="required", value=""),
        ValidationIssue(field="name", rule="max=255", value="n" * 300),
    ]
