from collections.abc import Callable
from typing import Any

import pytest

import actions_oidc as m


def test_from_mapping_reads_known_claims(make_payload: Callable[..., dict[str, Any]]):
    payload = make_payload(environment="production", custom="kept")

    claims = m.ActionsClaims.from_mapping(payload)

    assert claims.repository == "myorg/myrepo"
    assert claims.ref == "refs/heads/main"
    assert claims.environment == "production"
    assert claims.aud == ("https://api.example.com",)
    assert claims.exp == payload["exp"]
    assert claims.raw["custom"] == "kept"


def test_from_mapping_defaults_absent_claims():
    claims = m.ActionsClaims.from_mapping({"iss": m.GITHUB_ISSUER})

    assert claims.environment == ""
    assert claims.aud == ()
    assert claims.exp is None


def test_single_string_audience_is_normalized():
    claims = m.ActionsClaims.from_mapping({"aud": "sts.amazonaws.com"})
    assert claims.aud == ("sts.amazonaws.com",)


@pytest.mark.parametrize(
    "payload",
    [
        {"repository": 123},
        {"aud": [1, 2]},
        {"exp": "tomorrow"},
        {"exp": True},
    ],
)
def test_from_mapping_rejects_wrong_types(payload: dict[str, Any]):
    with pytest.raises(m.InvalidToken):
        m.ActionsClaims.from_mapping(payload)


def test_raw_is_read_only(make_payload: Callable[..., dict[str, Any]]):
    claims = m.ActionsClaims.from_mapping(make_payload())
    with pytest.raises(TypeError):
        claims.raw["repository"] = "evil/repo"  # type: ignore[index]


class TestValidate:
    """Test structural claim validation."""

    def test_valid_claims(self, make_payload: Callable[..., dict[str, Any]]):
        m.ActionsClaims.from_mapping(make_payload()).validate()

    def test_valid_with_optional_fields(self, make_payload: Callable[..., dict[str, Any]]):
        payload = make_payload(
            environment="production",
            triggering_actor="janedoe",
            enterprise_id="123",
            enterprise_slug="myenterprise",
        )
        m.ActionsClaims.from_mapping(payload).validate()

    def test_invalid_issuer(self, make_payload: Callable[..., dict[str, Any]]):
        claims = m.ActionsClaims.from_mapping(make_payload(iss="https://invalid.example.com"))

        with pytest.raises(m.InvalidIssuer):
            claims.validate()

    def test_custom_issuer(self, make_payload: Callable[..., dict[str, Any]]):
        claims = m.ActionsClaims.from_mapping(make_payload(iss="https://ghes.example.com/_services/token"))
        claims.validate("https://ghes.example.com/_services/token")

    @pytest.mark.parametrize("missing", list(m.REQUIRED_CLAIMS))
    def test_missing_required_claim(
        self, missing: str, make_payload: Callable[..., dict[str, Any]]
    ):
        claims = m.ActionsClaims.from_mapping(make_payload(**{missing: ""}))

        with pytest.raises(m.InvalidToken) as exc:
            claims.validate()

        assert exc.value.category == "invalid_token"
        assert missing in exc.value.reason

    @pytest.mark.parametrize("missing", list(m.REQUIRED_CLAIMS))
    def test_absent_required_claim(
        self, missing: str, make_payload: Callable[..., dict[str, Any]]
    ):
        claims = m.ActionsClaims.from_mapping(make_payload(**{missing: None}))

        with pytest.raises(m.InvalidToken):
            claims.validate()
