"""Tests for tenant profile loading."""

import json

import pytest

from centerhub.infra.error_handler import ConfigurationError
from centerhub.models.tenant import DedupPolicy
from centerhub.services.tenant_config_service import expand_env, load_tenant_profiles


@pytest.fixture
def write_profiles(tmp_path):
    def _write(data):
        path = tmp_path / "tenants.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        return str(path)
    return _write


def _entry(tenant_id, **overrides):
    data = {
        "tenant_id": tenant_id,
        "display_name": f"{tenant_id} center",
        "storage_url": "sqlite://",
    }
    data.update(overrides)
    return data


class TestLoadTenantProfiles:
    """Test validation of tenant profile files."""

    def test_builtin_profiles(self):
        profiles = load_tenant_profiles(path="", default_tenant_id="default")

        assert set(profiles) >= {"default", "cucuta"}
        assert profiles["default"].remote_tools_enabled is False
        assert profiles["cucuta"].remote_tools_enabled is True
        assert profiles["cucuta"].remote_tool_endpoint

    def test_file_with_env_expansion(self, write_profiles, monkeypatch):
        monkeypatch.setenv("CUCUTA_MCP", "https://mcp.cucuta.example.com/api/mcp")
        path = write_profiles({
            "default": _entry("default"),
            "cucuta": _entry(
                "cucuta",
                remote_tool_endpoint="${CUCUTA_MCP}",
                remote_tools_enabled=True,
                dedup_policy="reuse_prior_success",
                dedup_overrides={"check_inventory": "always_invoke"},
            ),
        })

        profiles = load_tenant_profiles(path=path, default_tenant_id="default")

        cucuta = profiles["cucuta"]
        assert cucuta.remote_tool_endpoint == "https://mcp.cucuta.example.com/api/mcp"
        assert cucuta.dedup_policy_for("get_rendimientos") == DedupPolicy.REUSE_PRIOR_SUCCESS
        assert cucuta.dedup_policy_for("check_inventory") == DedupPolicy.ALWAYS_INVOKE

    def test_tenant_id_defaults_to_key(self, write_profiles):
        entry = _entry("default")
        del entry["tenant_id"]

        profiles = load_tenant_profiles(path=write_profiles({"default": entry}), default_tenant_id="default")

        assert profiles["default"].tenant_id == "default"

    def test_mismatched_key(self, write_profiles):
        path = write_profiles({"default": _entry("other")})

        with pytest.raises(ConfigurationError):
            load_tenant_profiles(path=path, default_tenant_id="default")

    def test_remote_enabled_without_endpoint(self, write_profiles, monkeypatch):
        """An endpoint expanding to an empty string counts as missing."""
        monkeypatch.delenv("UNSET_MCP_URL", raising=False)
        path = write_profiles({
            "default": _entry("default", remote_tools_enabled=True, remote_tool_endpoint="${UNSET_MCP_URL}"),
        })

        with pytest.raises(ConfigurationError) as exc_info:
            load_tenant_profiles(path=path, default_tenant_id="default")

        assert "without an endpoint" in str(exc_info.value)

    def test_missing_default_tenant(self, write_profiles):
        path = write_profiles({"cucuta": _entry("cucuta")})

        with pytest.raises(ConfigurationError):
            load_tenant_profiles(path=path, default_tenant_id="default")

    def test_invalid_entry(self, write_profiles):
        path = write_profiles({"default": {"tenant_id": "default"}})

        with pytest.raises(ConfigurationError) as exc_info:
            load_tenant_profiles(path=path, default_tenant_id="default")

        assert "Invalid tenant profile default" in str(exc_info.value)

    def test_unreadable_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_tenant_profiles(path=str(tmp_path / "missing.json"), default_tenant_id="default")

    def test_expand_env_nested(self, monkeypatch):
        monkeypatch.setenv("REGION", "co-northeast")

        assert expand_env({"a": ["${REGION}", 3], "b": "x-${REGION}"}) == {"a": ["co-northeast", 3], "b": "x-co-northeast"}
