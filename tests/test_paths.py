"""Tests for path template resolution and key scoping."""

from datetime import datetime, timedelta, timezone

import pytest

from presigner.errors import AccessDenied, ValidationError
from presigner.models import CallerIdentity
from presigner.paths import (
    enforce_tenant_prefix,
    resolve_object_key,
    tenant_prefix_for,
    validate_object_key,
)

CALLER = CallerIdentity(user_id="abc123")
NOW = datetime(2024, 5, 17, 12, 0, tzinfo=timezone.utc)


class TestResolveObjectKey:
    def test_substitutes_user_and_year(self):
        key = resolve_object_key("u/<user>/<yyyy>/test.png", CALLER, NOW)
        assert key == "u/abc123/2024/test.png"

    def test_no_placeholders(self):
        assert resolve_object_key("u/abc123/2023/a.txt", CALLER, NOW) == "u/abc123/2023/a.txt"

    def test_every_occurrence_replaced(self):
        key = resolve_object_key("u/<user>/<yyyy>/<user>-<yyyy>.txt", CALLER, NOW)
        assert key == "u/abc123/2024/abc123-2024.txt"

    def test_year_is_utc(self):
        """New Year's Eve in Brazil is already next year in UTC."""
        local = datetime(2024, 12, 31, 22, 0, tzinfo=timezone(timedelta(hours=-3)))
        key = resolve_object_key("u/<user>/<yyyy>/a", CALLER, local)
        assert key == "u/abc123/2025/a"

    def test_unknown_placeholder_rejected_when_strict(self):
        with pytest.raises(ValidationError):
            resolve_object_key("u/<user>/<month>/a.txt", CALLER, NOW)

    def test_unknown_placeholder_passes_when_lenient(self):
        key = resolve_object_key("u/<user>/<month>/a.txt", CALLER, NOW, strict=False)
        assert key == "u/abc123/<month>/a.txt"

    def test_angle_brackets_in_user_id_not_flagged(self):
        caller = CallerIdentity(user_id="<odd>")
        assert resolve_object_key("u/<user>/a", caller, NOW) == "u/<odd>/a"


class TestValidateObjectKey:
    def test_valid(self):
        validate_object_key("u/abc123/2024/my file.png")

    def test_empty(self):
        with pytest.raises(ValidationError):
            validate_object_key("")

    def test_leading_slash(self):
        with pytest.raises(ValidationError):
            validate_object_key("/u/abc123/a")

    @pytest.mark.parametrize("key", ["u/abc123/../zzz999/a", "u/./a", "u//a", "u/abc123/"])
    def test_relative_or_empty_segments(self, key):
        with pytest.raises(ValidationError):
            validate_object_key(key)

    def test_control_characters(self):
        with pytest.raises(ValidationError):
            validate_object_key("u/abc123/a\nb")

    def test_too_long(self):
        with pytest.raises(ValidationError):
            validate_object_key("u/" + "a" * 1023)

    def test_max_length_accepted(self):
        validate_object_key("u/" + "a" * 1022)


class TestTenantPrefix:
    def test_prefix_for_caller(self):
        assert tenant_prefix_for("u/<user>/", CALLER) == "u/abc123/"

    def test_own_namespace_allowed(self):
        enforce_tenant_prefix("u/abc123/2024/a.png", CALLER, "u/<user>/")

    def test_other_tenant_denied(self):
        with pytest.raises(AccessDenied):
            enforce_tenant_prefix("u/zzz999/2024/a.png", CALLER, "u/<user>/")

    def test_prefix_sharing_user_id_denied(self):
        """'abc1234' is a different tenant than 'abc123'."""
        with pytest.raises(AccessDenied):
            enforce_tenant_prefix("u/abc1234/a.png", CALLER, "u/<user>/")

    def test_empty_prefix_allows_everything(self):
        enforce_tenant_prefix("anything/at/all", CALLER, "")
