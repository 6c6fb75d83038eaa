"""Tests for llmwarden.webhook.validator."""

import pytest

from fakes import access_obj
from llmwarden.webhook.admission import AdmissionRequest
from llmwarden.webhook.validator import AccessValidationError, AccessValidator, is_valid_env_var_name


@pytest.fixture
def validator() -> AccessValidator:
    return AccessValidator()


@pytest.mark.parametrize("name", ["OPENAI_API_KEY", "_X", "A1"])
def test_valid_env_var_names(name):
    assert is_valid_env_var_name(name)


@pytest.mark.parametrize("name", ["openai_key", "1KEY", "MY-KEY", "", "OPENAI_API_KEY\n"])
def test_invalid_env_var_names(name):
    assert not is_valid_env_var_name(name)


class TestValidateCreate:
    def test_default_grant_is_clean(self, validator):
        assert validator.validate_create(access_obj()) == []

    def test_missing_provider_ref(self, validator):
        with pytest.raises(AccessValidationError, match="invalid LLMAccess"):
            validator.validate_create({"metadata": {"name": "x"}, "spec": {"secretName": "s"}})

    def test_empty_provider_name(self, validator):
        with pytest.raises(AccessValidationError, match="spec.providerRef.name cannot be empty"):
            validator.validate_create(access_obj(provider=""))

    def test_empty_secret_name(self, validator):
        with pytest.raises(AccessValidationError, match="spec.secretName cannot be empty"):
            validator.validate_create(access_obj(secret_name=""))

    def test_no_injection(self, validator):
        obj = access_obj()
        obj["spec"]["injection"] = {}
        with pytest.raises(AccessValidationError, match="at least one of: env or volume"):
            validator.validate_create(obj)

    def test_bad_env_name(self, validator):
        with pytest.raises(AccessValidationError) as exc:
            validator.validate_create(access_obj(env=[{"name": "openai-key", "secretKey": "apiKey"}]))
        assert str(exc.value) == "invalid env var name: openai-key (must match [A-Z_][A-Z0-9_]*)"

    def test_trailing_newline_in_env_name(self, validator):
        with pytest.raises(AccessValidationError, match="invalid env var name"):
            validator.validate_create(access_obj(env=[{"name": "OPENAI_API_KEY\n", "secretKey": "apiKey"}]))

    def test_trailing_newline_in_rotation_interval(self, validator):
        with pytest.raises(AccessValidationError, match="spec.rotation.interval"):
            validator.validate_create(access_obj(rotation="7d\n"))

    def test_reserved_name_warns(self, validator):
        warnings = validator.validate_create(access_obj(env=[{"name": "HOME", "secretKey": "apiKey"}]))
        assert warnings == ["env var 'HOME' overrides reserved Kubernetes variable"]

    def test_warnings_survive_rejection(self, validator):
        env = [{"name": "HOSTNAME", "secretKey": "apiKey"}, {"name": "bad", "secretKey": "apiKey"}]
        with pytest.raises(AccessValidationError) as exc:
            validator.validate_create(access_obj(env=env))
        assert exc.value.warnings == ["env var 'HOSTNAME' overrides reserved Kubernetes variable"]

    @pytest.mark.parametrize(
        "mount_path, message",
        [("", "mountPath cannot be empty"), ("var/run/llm", "must be an absolute path")],
    )
    def test_bad_mount_path(self, validator, mount_path, message):
        with pytest.raises(AccessValidationError, match=message):
            validator.validate_create(access_obj(volume={"mountPath": mount_path}))

    def test_volume_only_is_fine(self, validator):
        assert validator.validate_create(access_obj(volume={"mountPath": "/var/run/llm"})) == []

    @pytest.mark.parametrize("interval", ["7x", "0h", "soon"])
    def test_bad_rotation_interval(self, validator, interval):
        with pytest.raises(AccessValidationError, match="spec.rotation.interval"):
            validator.validate_create(access_obj(rotation=interval))

    def test_good_rotation_interval(self, validator):
        assert validator.validate_create(access_obj(rotation="6h")) == []


class TestHandle:
    def test_create_allowed(self, validator):
        response = validator.handle(AdmissionRequest(uid="u", operation="CREATE", object=access_obj()))
        assert response.allowed
        assert response.warnings is None

    def test_create_denied(self, validator):
        response = validator.handle(
            AdmissionRequest(uid="u", operation="CREATE", object=access_obj(secret_name=""))
        )
        assert not response.allowed
        assert response.status.code == 403
        assert response.status.message == "spec.secretName cannot be empty"

    def test_update_checks_new_object(self, validator):
        response = validator.handle(
            AdmissionRequest(
                uid="u",
                operation="UPDATE",
                old_object=access_obj(),
                object=access_obj(env=[{"name": "HOME", "secretKey": "apiKey"}]),
            )
        )
        assert response.allowed
        assert response.warnings == ["env var 'HOME' overrides reserved Kubernetes variable"]

    def test_delete_always_allowed(self, validator):
        response = validator.handle(
            AdmissionRequest(uid="u", operation="DELETE", old_object=access_obj(secret_name=""))
        )
        assert response.allowed
