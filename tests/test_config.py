"""Tests for settings loading and startup configuration failures."""
import pytest
from pydantic import ValidationError

from tooling_lab import mcp_server
from tooling_lab.config import Settings, load_settings
from tooling_lab.errors import ConfigurationError


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """No API key in the environment and no .env file in the working directory."""
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None, OPENAI_API_KEY="sk-test")

        assert settings.OPENAI_EMBED_MODEL == "text-embedding-3-small"
        assert settings.VECTOR_COLLECTION == "mcp_tooling_lab"
        assert settings.APP_NAME == "mcp-tooling-lab"
        assert settings.APP_VERSION == "0.1.0"
        assert settings.DEFAULT_TOP_K == 5
        assert settings.MAX_TOP_K == 20
        assert settings.MCP_TRANSPORT == "stdio"
        assert settings.OTEL_ENABLED is False

    def test_missing_api_key(self, clean_env):
        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_blank_api_key(self):
        with pytest.raises(ValidationError, match="OPENAI_API_KEY is required"):
            Settings(_env_file=None, OPENAI_API_KEY="   ")

    def test_reads_environment(self, clean_env):
        clean_env.setenv("OPENAI_API_KEY", "sk-env")
        clean_env.setenv("OPENAI_EMBED_MODEL", "text-embedding-3-large")
        clean_env.setenv("VECTOR_COLLECTION", "notes")

        settings = Settings(_env_file=None)

        assert settings.OPENAI_API_KEY == "sk-env"
        assert settings.OPENAI_EMBED_MODEL == "text-embedding-3-large"
        assert settings.VECTOR_COLLECTION == "notes"

    @pytest.mark.parametrize(
        "url, expected",
        [
            ("postgres://u:p@db/lab", "postgresql+asyncpg://u:p@db/lab"),
            ("postgresql://u:p@db/lab", "postgresql+asyncpg://u:p@db/lab"),
            ("postgresql+asyncpg://u:p@db/lab", "postgresql+asyncpg://u:p@db/lab"),
        ],
    )
    def test_database_url_uses_asyncpg(self, url, expected):
        settings = Settings(_env_file=None, OPENAI_API_KEY="sk-test", DATABASE_URL=url)

        assert settings.DATABASE_URL == expected

    @pytest.mark.parametrize(
        "overrides",
        [
            {"DATABASE_URL": "sqlite:///lab.db"},
            {"EMBEDDING_ENDPOINT_URL": "ftp://embeddings"},
            {"EMBEDDING_DIMENSION": 0},
            {"EMBEDDING_TIMEOUT": 0},
            {"LOG_LEVEL": "VERBOSE"},
            {"MCP_TRANSPORT": "websocket"},
            {"VECTOR_COLLECTION": "  "},
            {"MAX_TOP_K": 0},
            {"MAX_TOP_K": 50},
            {"DEFAULT_TOP_K": 21},
            {"DEFAULT_TOP_K": 10, "MAX_TOP_K": 8},
        ],
    )
    def test_invalid_values(self, overrides):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, OPENAI_API_KEY="sk-test", **overrides)

    def test_normalises_case_and_trailing_slash(self):
        settings = Settings(
            _env_file=None,
            OPENAI_API_KEY="sk-test",
            LOG_LEVEL="debug",
            MCP_TRANSPORT="HTTP",
            EMBEDDING_ENDPOINT_URL="http://localhost:8001/v1/embeddings/",
        )

        assert settings.LOG_LEVEL == "DEBUG"
        assert settings.MCP_TRANSPORT == "http"
        assert settings.EMBEDDING_ENDPOINT_URL == "http://localhost:8001/v1/embeddings"


class TestStartupFailure:
    def test_load_settings_raises_configuration_error(self, clean_env):
        with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
            load_settings()

    def test_main_exits_with_status_one(self, clean_env):
        """A missing API key stops the process before any transport starts."""
        served = []
        clean_env.setattr(mcp_server, "serve", lambda settings: served.append(settings))

        with pytest.raises(SystemExit) as exc_info:
            mcp_server.main()

        assert exc_info.value.code == 1
        assert served == []
