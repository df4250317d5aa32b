from __future__ import annotations

from pathlib import Path

import pytest

from docrules.constraints import (
    InvalidFunctionOptionsError,
    RuleDefinitionError,
    RulesetValidationError,
    SelectorSyntaxError,
    UnknownFunctionError,
    find_ruleset,
    load_ruleset,
    load_ruleset_data,
)
from docrules.constraints.load import normalize_severity


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


TRUTHY_PATHS = {"given": "$.paths", "then": {"function": "truthy"}}


def test_mapping_form_keeps_declaration_order() -> None:
    ruleset = load_ruleset_data({"rules": {"b-rule": TRUTHY_PATHS, "a-rule": TRUTHY_PATHS}})
    assert [r.id for r in ruleset.rules] == ["b-rule", "a-rule"]
    rule = ruleset.get("b-rule")
    assert rule is not None
    assert rule.severity == "warning"
    assert rule.formats == frozenset()
    assert rule.given[0].expression == "$.paths"
    assert rule.then[0].function == "truthy"
    assert rule.then[0].options == {}


def test_list_form_uses_id_key() -> None:
    ruleset = load_ruleset_data({"rules": [dict(TRUTHY_PATHS, id="one"), dict(TRUTHY_PATHS, id="two")]})
    assert [r.id for r in ruleset.rules] == ["one", "two"]


def test_optional_rule_fields() -> None:
    raw = dict(
        TRUTHY_PATHS,
        description="Paths must exist",
        message="{{error}}",
        formats=["oas3", "oas2"],
        type="style",
        documentationUrl="https://example.com/rules#paths",
    )
    rule = load_ruleset_data({"name": "style", "rules": {"paths": raw}}).rules[0]
    assert rule.description == "Paths must exist"
    assert rule.message == "{{error}}"
    assert rule.formats == frozenset({"oas2", "oas3"})
    assert rule.rule_type == "style"
    assert rule.documentation_url == "https://example.com/rules#paths"


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("error", "error"),
        ("warn", "warning"),
        ("warning", "warning"),
        (" Info ", "info"),
        ("information", "info"),
        ("hint", "hint"),
        ("off", "off"),
        (0, "error"),
        (1, "warning"),
        (2, "info"),
        (3, "hint"),
        (-1, "off"),
    ],
)
def test_severity_aliases(raw, expected) -> None:
    assert normalize_severity(raw) == expected


@pytest.mark.parametrize("raw", ["fatal", 4, True, 1.5, ["error"]])
def test_invalid_severity(raw) -> None:
    with pytest.raises(RuleDefinitionError):
        normalize_severity(raw, rule_id="r")


def test_all_rule_errors_are_reported_together() -> None:
    data = {
        "rules": {
            "bad-selector": {"given": "$.paths[", "then": {"function": "truthy"}},
            "bad-function": {"given": "$.paths", "then": {"function": "no-such-function"}},
            "bad-options": {"given": "$.paths", "then": {"function": "pattern", "functionOptions": {"match": 1}}},
            "disabled-but-broken": {"severity": "off", "given": "paths", "then": {"function": "truthy"}},
            "fine": TRUTHY_PATHS,
        }
    }
    with pytest.raises(RulesetValidationError) as excinfo:
        load_ruleset_data(data)

    errors = excinfo.value.errors
    by_rule = {e.rule_id: e for e in errors}
    assert set(by_rule) == {"bad-selector", "bad-function", "bad-options", "disabled-but-broken"}
    assert isinstance(by_rule["bad-selector"], SelectorSyntaxError)
    assert by_rule["bad-selector"].expression == "$.paths["
    assert isinstance(by_rule["bad-function"], UnknownFunctionError)
    assert by_rule["bad-function"].function == "no-such-function"
    assert isinstance(by_rule["bad-options"], InvalidFunctionOptionsError)
    assert isinstance(by_rule["disabled-but-broken"], SelectorSyntaxError)
    assert "4 invalid rule(s)" in str(excinfo.value)


def test_rule_errors_can_be_picked_out_by_type() -> None:
    data = {
        "rules": {
            "one": {"given": "$.paths[", "then": {"function": "truthy"}},
            "two": {"given": "$.paths", "then": {"function": "no-such-function"}},
            "three": {"given": "$.info[", "then": {"function": "truthy"}},
        }
    }
    with pytest.raises(RulesetValidationError) as excinfo:
        load_ruleset_data(data)

    error = excinfo.value
    assert [e.rule_id for e in error.errors_of(SelectorSyntaxError)] == ["one", "three"]
    assert [e.function for e in error.errors_of(UnknownFunctionError)] == ["no-such-function"]
    assert error.errors_of(InvalidFunctionOptionsError) == []
    assert len(error.errors_of(RuleDefinitionError)) == 3


def test_bad_field_selector_is_reported() -> None:
    data = {"rules": {"r": {"given": "$", "then": {"field": "$.[", "function": "truthy"}}}}
    with pytest.raises(RulesetValidationError) as excinfo:
        load_ruleset_data(data)
    assert isinstance(excinfo.value.errors[0], SelectorSyntaxError)


def test_field_selector_is_parsed() -> None:
    rule = load_ruleset_data({"rules": {"r": {"given": "$", "then": {"field": "$..name", "function": "truthy"}}}}).rules[0]
    assert rule.then[0].field == "$..name"
    assert rule.then[0].field_selector is not None


@pytest.mark.parametrize(
    "body",
    [
        {"then": {"function": "truthy"}},
        {"given": "$"},
        {"given": "$", "then": "truthy"},
        {"given": "$", "then": {"function": "truthy"}, "unexpected": True},
        {"given": "$", "then": {"function": "truthy", "fields": "x"}},
        {"given": "$", "then": {"function": "truthy"}, "formats": ["oas3", 1]},
        {"given": "$", "then": {"function": "truthy"}, "description": 5},
        "not a mapping",
    ],
)
def test_malformed_rules(body) -> None:
    with pytest.raises(RulesetValidationError) as excinfo:
        load_ruleset_data({"rules": {"r": body}})
    assert all(e.rule_id == "r" for e in excinfo.value.errors)


def test_duplicate_ids_in_list_form() -> None:
    with pytest.raises(RulesetValidationError) as excinfo:
        load_ruleset_data({"rules": [dict(TRUTHY_PATHS, id="dup"), dict(TRUTHY_PATHS, id="dup")]})
    assert "duplicate rule id" in str(excinfo.value)


def test_list_entry_without_id() -> None:
    with pytest.raises(RulesetValidationError):
        load_ruleset_data({"rules": [TRUTHY_PATHS]})


def test_unsupported_version() -> None:
    with pytest.raises(RulesetValidationError) as excinfo:
        load_ruleset_data({"version": 2, "rules": {}})
    assert excinfo.value.errors == []
    assert "unsupported ruleset version" in str(excinfo.value)


def test_unknown_ruleset_key() -> None:
    with pytest.raises(RulesetValidationError):
        load_ruleset_data({"rules": {}, "extends": "spectral:oas"})


def test_load_yaml_json_and_toml(tmp_path: Path) -> None:
    _write(
        tmp_path / "style.yaml",
        """
rules:
  no-http:
    severity: error
    given: $.servers[*].url
    then:
      function: pattern
      functionOptions:
        match: ^https
""",
    )
    _write(
        tmp_path / "style.json",
        '{"name": "json-style", "rules": {"no-http": {"severity": "error", "given": "$.servers[*].url",'
        ' "then": {"function": "pattern", "functionOptions": {"match": "^https"}}}}}',
    )
    _write(
        tmp_path / "style.toml",
        """
version = 1

[rules.no-http]
severity = "error"
given = "$.servers[*].url"

[rules.no-http.then]
function = "pattern"
functionOptions = { match = "^https" }
""",
    )

    yaml_rules = load_ruleset(tmp_path / "style.yaml")
    json_rules = load_ruleset(tmp_path / "style.json")
    toml_rules = load_ruleset(tmp_path / "style.toml")

    assert yaml_rules.name == "style"
    assert json_rules.name == "json-style"
    for ruleset in (yaml_rules, json_rules, toml_rules):
        assert [r.id for r in ruleset.rules] == ["no-http"]
        assert ruleset.rules[0].severity == "error"
        assert ruleset.rules[0].then[0].options == {"match": "^https"}


def test_unreadable_ruleset(tmp_path: Path) -> None:
    _write(tmp_path / "broken.yaml", "rules: [unclosed\n")
    with pytest.raises(RulesetValidationError):
        load_ruleset(tmp_path / "broken.yaml")
    with pytest.raises(RulesetValidationError):
        load_ruleset(tmp_path / "missing.yaml")


def test_find_ruleset_walks_up(tmp_path: Path) -> None:
    _write(tmp_path / ".docrules.yaml", "rules: {}\n")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    assert find_ruleset(nested) == (tmp_path / ".docrules.yaml").resolve()


def test_fixture_ruleset_loads(api_style_ruleset) -> None:
    assert api_style_ruleset.name == "api-style"
    assert len(api_style_ruleset.rules) == 16
    assert api_style_ruleset.get("no-x-headers").severity == "warning"
    assert api_style_ruleset.get("request-GET-no-body-oas3").formats == frozenset({"oas3"})
