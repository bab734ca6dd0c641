import json
from pathlib import Path

import pytest

import actions_oidc as m
from actions_oidc import config

POLICY = {
    "default_deny": True,
    "rules": [
        {
            "name": "main",
            "effect": "allow",
            "conditions": {"repository": ["myorg/*"], "ref": ["refs/heads/main"]},
        }
    ],
}


@pytest.fixture
def policy_file(tmp_path: Path) -> Path:
    path = tmp_path / "policy.json"
    path.write_text(json.dumps(POLICY), encoding="utf-8")
    return path


def test_defaults_from_empty_environment():
    options = m.options_from_env({})

    assert options.audience is None
    assert options.policy is None
    assert options.issuer == m.GITHUB_ISSUER
    assert options.jwks_url == m.DEFAULT_JWKS_URL
    assert options.cache_duration == 3600
    assert options.timeout == 10


def test_reads_all_variables(policy_file: Path):
    options = m.options_from_env(
        {
            "ACTIONS_OIDC_AUDIENCE": "https://deploy.example.com",
            "ACTIONS_OIDC_ISSUER": "https://ghes.example.com/_services/token",
            "ACTIONS_OIDC_JWKS_URL": "https://ghes.example.com/_services/token/.well-known/jwks",
            "ACTIONS_OIDC_CACHE_SECONDS": "600",
            "ACTIONS_OIDC_HTTP_TIMEOUT": "2.5",
            "ACTIONS_OIDC_POLICY_FILE": str(policy_file),
        }
    )

    assert options.audience == "https://deploy.example.com"
    assert options.issuer == "https://ghes.example.com/_services/token"
    assert options.jwks_url.endswith("/.well-known/jwks")
    assert options.cache_duration == 600
    assert options.timeout == 2.5
    assert options.policy is not None
    assert options.policy.rules[0].name == "main"


def test_blank_values_are_ignored():
    options = m.options_from_env({"ACTIONS_OIDC_AUDIENCE": "  ", "ACTIONS_OIDC_CACHE_SECONDS": ""})

    assert options.audience is None
    assert options.cache_duration == 3600


@pytest.mark.parametrize("value", ["soon", "0", "-5"])
def test_bad_cache_seconds(value: str):
    with pytest.raises(m.ConfigurationError) as exc:
        m.options_from_env({"ACTIONS_OIDC_CACHE_SECONDS": value})

    assert "ACTIONS_OIDC_CACHE_SECONDS" in exc.value.reason


def test_reads_process_environment(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(config, "load_dotenv", lambda: False)
    monkeypatch.setenv("ACTIONS_OIDC_AUDIENCE", "from-env")

    assert m.options_from_env().audience == "from-env"


def test_load_policy_file(policy_file: Path):
    policy = m.load_policy_file(policy_file)

    assert policy.default_deny is True
    assert policy.rules[0].conditions.repository == ("myorg/*",)


def test_load_policy_file_missing(tmp_path: Path):
    with pytest.raises(m.ConfigurationError):
        m.load_policy_file(tmp_path / "nope.json")


def test_load_policy_file_not_json(tmp_path: Path):
    path = tmp_path / "policy.json"
    path.write_text("rules: []", encoding="utf-8")

    with pytest.raises(m.ConfigurationError):
        m.load_policy_file(path)


def test_load_policy_file_validates(tmp_path: Path):
    path = tmp_path / "policy.json"
    path.write_text(json.dumps({"rules": [{"name": "all", "effect": "allow"}]}), encoding="utf-8")

    with pytest.raises(m.PolicyError) as exc:
        m.load_policy_file(path)

    assert exc.value.rule == "all"


def test_load_policy_file_rejects_non_object(tmp_path: Path):
    path = tmp_path / "policy.json"
    path.write_text("[]", encoding="utf-8")

    with pytest.raises(m.PolicyError):
        m.load_policy_file(path)
