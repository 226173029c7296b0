import json

import pytest

from service import config_schema
from service.config_schema import ConfigError


@pytest.fixture
def write_config(tmp_path, monkeypatch):
    def _write(cfg, name="config.json"):
        p = tmp_path / name
        p.write_text(json.dumps(cfg) if name.endswith(".json") else cfg, encoding="utf-8")
        monkeypatch.setenv("CONFIG_PATH", str(p))
        return p

    return _write


def test_missing_config_path_gives_empty_jobs():
    cfg = config_schema.load_config()
    assert cfg["jobs"] == []
    config_schema.validate(cfg)


def test_load_and_validate_min_config(write_config):
    write_config({
        "timezone": "America/New_York",
        "jobs": [
            {
                "name": "digest",
                "module": "modules.job_digest",
                "interval": {"hours": 2},
                "kwargs": {"include": "engineer", "max": "5"},
                "timeout_sec": "120",
            }
        ],
    })
    cfg = config_schema.load_config()
    config_schema.validate(cfg)

    (job,) = cfg["jobs"]
    assert job["id"] == "digest"
    assert job["trigger"] == {"interval": {"hours": 2}}
    assert "interval" not in job
    assert job["timeout_sec"] == 120
    assert cfg["timezone"] == "America/New_York"


def test_yaml_config(write_config):
    write_config(
        "jobs:\n"
        "  - module: modules.job_digest\n"
        "    trigger:\n"
        "      cron: '0 9 * * mon-fri'\n",
        name="config.yaml",
    )
    cfg = config_schema.load_config()
    config_schema.validate(cfg)
    assert cfg["jobs"][0]["id"] == "modules.job_digest"


@pytest.mark.parametrize(
    "job, message",
    [
        ({"trigger": {"interval": {"minutes": 5}}}, "'module' is required"),
        ({"module": "m"}, "'trigger' must be an object"),
        ({"module": "m", "trigger": {"interval": {"minutes": 5}, "cron": "* * * * *"}}, "exactly one trigger"),
        ({"module": "m", "trigger": {"daily_time": "25:00"}}, "out of range"),
        ({"module": "m", "trigger": {"interval": {"minutes": 5}}, "kwargs": []}, "'kwargs' must be a dict"),
    ],
)
def test_validate_rejects_bad_jobs(job, message):
    with pytest.raises(ConfigError, match=message):
        config_schema.validate({"jobs": [job]})


def test_duplicate_job_ids_rejected():
    job = {"id": "same", "module": "m", "trigger": {"interval": {"minutes": 5}}}
    with pytest.raises(ConfigError, match="Duplicate job id"):
        config_schema.validate({"jobs": [job, dict(job)]})


def test_mixed_trigger_forms_rejected(write_config):
    write_config({"jobs": [{"module": "m", "cron": "* * * * *", "trigger": {"interval": {"minutes": 1}}}]})
    with pytest.raises(ConfigError, match="do not mix"):
        config_schema.load_config()


def test_missing_file_and_bad_json(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        config_schema.load_config(str(tmp_path / "nope.json"))

    bad = tmp_path / "bad.json"
    bad.write_text("{", encoding="utf-8")
    with pytest.raises(ConfigError, match="Invalid JSON"):
        config_schema.load_config(str(bad))


@pytest.mark.parametrize(
    "kwargs, message",
    [
        ({"inclde": "engineer"}, "unknown job_digest kwarg"),
        ({"max": "ten"}, "'max' must be an integer"),
        ({"page_source": "carrier-pigeon"}, "'page_source' must be one of"),
        ({"page_source": "static"}, "requires 'static_dir'"),
        ({"seen_bound": 0}, "'seen_bound' must be >= 1"),
        ({"include_env": ""}, "must name an environment variable"),
        ({"sources": {"name": "Alpha"}}, "'sources' must be a list"),
    ],
)
def test_job_digest_kwargs_are_checked(kwargs, message):
    job = {"id": "digest", "module": "modules.job_digest", "trigger": {"cron": "0 9 * * *"}, "kwargs": kwargs}
    with pytest.raises(ConfigError, match=message):
        config_schema.validate({"jobs": [job]})


def test_job_digest_kwargs_accept_env_indirection_and_flags():
    kwargs = {"include_env": "DIGEST_INCLUDE", "max": 5, "dedupe": False, "page_source": "http"}
    job = {"id": "digest", "module": "modules.job_digest", "trigger": {"cron": "0 9 * * *"}, "kwargs": kwargs}
    config_schema.validate({"jobs": [job]})

    # Other modules' kwargs are not inspected.
    other = {"id": "other", "module": "modules.elsewhere", "trigger": {"cron": "0 9 * * *"}, "kwargs": {"x": 1}}
    config_schema.validate({"jobs": [other]})
