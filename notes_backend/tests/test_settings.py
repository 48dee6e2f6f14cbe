import logging

from src.notes_api.logging_setup import setup_logging
from src.notes_api.settings import get_settings


class TestSettings:
    def test_defaults(self):
        settings = get_settings({})
        assert settings.persistence_backend == "memory"
        assert not settings.uses_sqlite
        assert settings.sqlite_db_path == "./data/notes.db"
        assert settings.cors_allow_origins == ["*"]
        assert settings.enable_basic_auth is False
        assert settings.basic_auth_username is None
        assert settings.log_level == "INFO"
        assert settings.log_file is None

    def test_env_values(self):
        settings = get_settings(
            {
                "PERSISTENCE_BACKEND": " SQLite ",
                "SQLITE_DB_PATH": "/tmp/x.db",
                "CORS_ALLOW_ORIGINS": "http://a.test, http://b.test,",
                "ENABLE_BASIC_AUTH": "yes",
                "BASIC_AUTH_USERNAME": "alice",
                "BASIC_AUTH_PASSWORD": "s3cret",
                "LOG_LEVEL": "debug",
                "LOG_FILE": "/tmp/notes.log",
            }
        )
        assert settings.uses_sqlite
        assert settings.sqlite_db_path == "/tmp/x.db"
        assert settings.cors_allow_origins == ["http://a.test", "http://b.test"]
        assert settings.enable_basic_auth is True
        assert (settings.basic_auth_username, settings.basic_auth_password) == ("alice", "s3cret")
        assert settings.log_level == "DEBUG"
        assert settings.log_file == "/tmp/notes.log"

    def test_unknown_values_fall_back(self):
        settings = get_settings(
            {"PERSISTENCE_BACKEND": "postgres", "LOG_LEVEL": "chatty", "BASIC_AUTH_USERNAME": "ignored", "SQLITE_DB_PATH": ""}
        )
        assert settings.persistence_backend == "memory"
        assert settings.log_level == "INFO"
        assert settings.basic_auth_username is None
        assert settings.sqlite_db_path == "./data/notes.db"


class TestLogging:
    def test_setup_is_idempotent_and_writes_file(self, tmp_path):
        log_file = tmp_path / "logs" / "notes.log"
        setup_logging("INFO", log_file)
        setup_logging("INFO", log_file)

        pkg_logger = logging.getLogger("src.notes_api")
        ours = [h for h in pkg_logger.handlers if getattr(h, "_notes_api_handler", False)]
        assert len(ours) == 2

        logging.getLogger("src.notes_api.services").info("archived something")
        for h in ours:
            h.flush()
        assert "archived something" in log_file.read_text(encoding="utf-8")

        setup_logging("WARNING")
        ours = [h for h in pkg_logger.handlers if getattr(h, "_notes_api_handler", False)]
        assert len(ours) == 1
        assert pkg_logger.level == logging.WARNING
