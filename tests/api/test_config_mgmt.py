"""Tests for runtime config patching and the config endpoints."""
import pytest

from job_engine.api.config import ApiSettings, RuntimeConfig
from job_engine.api.jobs.retention import NoRetention, TerminalTTLRetention


def test_get_adjustable(engine_config):
    values = RuntimeConfig().get_adjustable()
    assert set(values) == {
        "CAPACITY_ERROR_STATUS",
        "DEFAULT_RETRY_AFTER_SECONDS",
        "JOB_RETENTION_TTL_SECONDS",
        "MAX_ACTIVE_JOBS",
    }
    assert values["MAX_ACTIVE_JOBS"] == engine_config.MAX_ACTIVE_JOBS


def test_patch_coerces_and_applies(engine_config):
    state = RuntimeConfig().patch({"MAX_ACTIVE_JOBS": "7"})
    assert state["MAX_ACTIVE_JOBS"] == 7
    assert engine_config.MAX_ACTIVE_JOBS == 7


def test_patch_unknown_key(engine_config):
    with pytest.raises(KeyError):
        RuntimeConfig().patch({"MAX_CONCURRENT_WORKERS": 8})


def test_patch_is_all_or_nothing(engine_config):
    before = engine_config.MAX_ACTIVE_JOBS
    with pytest.raises(ValueError):
        RuntimeConfig().patch({"MAX_ACTIVE_JOBS": 5, "CAPACITY_ERROR_STATUS": 418})
    assert engine_config.MAX_ACTIVE_JOBS == before


def test_patch_uncoercible_value(engine_config):
    with pytest.raises(ValueError, match="Cannot coerce"):
        RuntimeConfig().patch({"DEFAULT_RETRY_AFTER_SECONDS": "soon"})


def test_settings_env_prefix(monkeypatch):
    monkeypatch.setenv("JOB_ENGINE_API_JOB_STORE", "memory")
    monkeypatch.setenv("JOB_ENGINE_API_PORT", "9001")
    settings = ApiSettings()
    assert settings.job_store == "memory"
    assert settings.port == 9001


def test_validate_config_defaults_clean(engine_config):
    assert engine_config.validate_config() == []


def test_validate_config_flags_problems(engine_config):
    engine_config.MAX_CONCURRENT_WORKERS = 0
    engine_config.CAPACITY_ERROR_STATUS = 502
    engine_config.JOB_RETENTION_TTL_SECONDS = 0
    issues = engine_config.validate_config()
    levels = [i["level"] for i in issues]
    assert levels.count("ERROR") == 2
    assert levels.count("WARNING") == 1


@pytest.mark.asyncio
async def test_get_config_endpoint(client):
    resp = await client.get("/api/config")
    assert resp.status_code == 200
    assert resp.json()["data"]["CAPACITY_ERROR_STATUS"] == 503


@pytest.mark.asyncio
async def test_validate_endpoint(client, engine_config):
    engine_config.LOG_FORMAT = "xml"
    data = (await client.get("/api/config/validate")).json()["data"]
    assert data["count"] == 1
    assert data["warnings"] == 1
    assert data["errors"] == 0


@pytest.mark.asyncio
async def test_patch_endpoint_reconfigures_manager(client, app_manager):
    resp = await client.patch(
        "/api/config",
        json={"MAX_ACTIVE_JOBS": 1, "DEFAULT_RETRY_AFTER_SECONDS": 12, "JOB_RETENTION_TTL_SECONDS": 0},
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["MAX_ACTIVE_JOBS"] == 1
    assert app_manager.max_active_jobs == 1
    assert isinstance(app_manager.retention_policy, NoRetention)

    submitted = await client.post("/api/operations/system.echo")
    assert submitted.headers["retry-after"] == "12"
    assert (await client.post("/api/operations/system.echo")).status_code == 503


@pytest.mark.asyncio
async def test_patch_endpoint_ttl(client, app_manager):
    await client.patch("/api/config", json={"JOB_RETENTION_TTL_SECONDS": 60})
    assert isinstance(app_manager.retention_policy, TerminalTTLRetention)
    assert repr(app_manager.retention_policy) == "TerminalTTLRetention(ttl_seconds=60)"


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{"LOG_LEVEL": "DEBUG"}, {"MAX_ACTIVE_JOBS": 0}])
async def test_patch_endpoint_rejects(client, payload):
    resp = await client.patch("/api/config", json=payload)
    assert resp.status_code == 422
    assert resp.json()["ok"] is False


@pytest.mark.parametrize("value", [0.5, 2.75, "0.5", True, None, [1]])
def test_patch_rejects_non_integral_values(engine_config, value):
    before = engine_config.JOB_RETENTION_TTL_SECONDS
    with pytest.raises(ValueError, match="Cannot coerce"):
        RuntimeConfig().patch({"JOB_RETENTION_TTL_SECONDS": value})
    assert engine_config.JOB_RETENTION_TTL_SECONDS == before


@pytest.mark.parametrize("value, expected", [(120, 120), (120.0, 120), (" 90 ", 90)])
def test_patch_accepts_integral_values(engine_config, value, expected):
    state = RuntimeConfig().patch({"JOB_RETENTION_TTL_SECONDS": value})
    assert state["JOB_RETENTION_TTL_SECONDS"] == expected
    assert type(engine_config.JOB_RETENTION_TTL_SECONDS) is int


@pytest.mark.asyncio
async def test_patch_endpoint_rejects_fractional_ttl(client, app_manager):
    before = repr(app_manager.retention_policy)
    resp = await client.patch("/api/config", json={"JOB_RETENTION_TTL_SECONDS": 0.5})
    assert resp.status_code == 422
    assert repr(app_manager.retention_policy) == before
