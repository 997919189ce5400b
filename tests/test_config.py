import pytest
from pydantic import ValidationError

from jlobby.config import LobbySettings
from jlobby.core.retry import RetryPolicy


@pytest.fixture(autouse=True)
def clean_env(monkeypatch) -> None:
    for name in (
        "JLOBBY_ENVIRONMENT",
        "JLOBBY_LOG_LEVEL",
        "JLOBBY_ENFORCE_APP_CHECK",
        "JLOBBY_LEAVE_ATTEMPTS",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    settings = LobbySettings(_env_file=None)
    assert settings.environment == "local"
    assert settings.enforce_app_check is True
    assert settings.users_keyspace == "users"
    assert settings.usernames_keyspace == "usernames"
    assert settings.queue_keyspace == "quick_matchmaking_queue"
    assert settings.presence_keyspace == "presence"


def test_default_policies() -> None:
    settings = LobbySettings(_env_file=None)
    assert settings.username_policy == RetryPolicy(attempts=3)
    assert settings.identity_policy == RetryPolicy(attempts=3, delay=0.5)
    assert settings.leave_policy == RetryPolicy(attempts=10, delay=0.5)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("local", "local"),
        ("dev", "local"),
        ("Development", "local"),
        ("stage", "staging"),
        ("STAGING", "staging"),
        ("prod", "prod"),
        (" production ", "prod"),
        ("qa", "local"),
    ],
)
def test_environment_aliases(monkeypatch, raw, expected) -> None:
    monkeypatch.setenv("JLOBBY_ENVIRONMENT", raw)
    assert LobbySettings(_env_file=None).environment == expected


@pytest.mark.parametrize(
    ("environment", "level"),
    [("local", "DEBUG"), ("staging", "INFO"), ("prod", "WARNING")],
)
def test_log_level_follows_environment(environment, level) -> None:
    settings = LobbySettings(_env_file=None, environment=environment)
    assert settings.effective_log_level == level


def test_explicit_log_level_wins(monkeypatch) -> None:
    monkeypatch.setenv("JLOBBY_ENVIRONMENT", "prod")
    monkeypatch.setenv("JLOBBY_LOG_LEVEL", "debug")
    assert LobbySettings(_env_file=None).effective_log_level == "DEBUG"


def test_env_overrides(monkeypatch) -> None:
    monkeypatch.setenv("JLOBBY_ENFORCE_APP_CHECK", "false")
    monkeypatch.setenv("JLOBBY_LEAVE_ATTEMPTS", "4")
    settings = LobbySettings(_env_file=None)
    assert settings.enforce_app_check is False
    assert settings.leave_policy.attempts == 4


def test_empty_env_value_ignored(monkeypatch) -> None:
    monkeypatch.setenv("JLOBBY_LEAVE_ATTEMPTS", "")
    assert LobbySettings(_env_file=None).leave_attempts == 10


def test_reads_env_file(tmp_path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("JLOBBY_ENVIRONMENT=staging\nJLOBBY_USERS_KEYSPACE=profiles\n")
    settings = LobbySettings(_env_file=env_file)
    assert settings.environment == "staging"
    assert settings.users_keyspace == "profiles"


@pytest.mark.parametrize(
    "overrides",
    [{"username_attempts": 0}, {"leave_retry_delay": -1}, {"cas_max_retries": 0}],
)
def test_rejects_invalid_budgets(overrides) -> None:
    with pytest.raises(ValidationError):
        LobbySettings(_env_file=None, **overrides)


def test_settings_are_frozen() -> None:
    settings = LobbySettings(_env_file=None)
    with pytest.raises(ValidationError):
        settings.environment = "prod"  # type: ignore[misc]
