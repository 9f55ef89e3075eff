"""Tests for settings loading, logging setup and the database setup script."""

import logging

import pytest

import setup_database
from config import DEFAULT_DATABASE_URL, Settings, normalize_database_url
from logging_setup import coerce_level, configure_logging

ENV_VARS = [
    'DATABASE_URL', 'OPENAI_API_KEY', 'OPENAI_MODEL', 'OPENAI_TIMEOUT', 'OPENAI_MAX_RETRIES',
    'MAX_IMAGE_BYTES', 'AUTH_REQUIRED', 'OPENFOODFACTS_URL', 'PRODUCT_LOOKUP_TIMEOUT',
    'LOG_LEVEL', 'CORS_ORIGINS',
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestSettings:
    def test_defaults(self, clean_env):
        settings = Settings.from_env(dotenv=False)

        assert settings.database_url == DEFAULT_DATABASE_URL
        assert settings.openai_api_key == ''
        assert settings.openai_model == 'gpt-4o'
        assert settings.max_image_bytes == 10 * 1024 * 1024
        assert settings.auth_required is False
        assert settings.cors_origins == ['*']

    def test_from_environment(self, clean_env):
        clean_env.setenv('DATABASE_URL', 'postgres://u:p@db:5432/pantry')
        clean_env.setenv('OPENAI_API_KEY', ' sk-test ')
        clean_env.setenv('OPENAI_TIMEOUT', '15')
        clean_env.setenv('AUTH_REQUIRED', 'TRUE')
        clean_env.setenv('OPENFOODFACTS_URL', 'https://off.example/')
        clean_env.setenv('LOG_LEVEL', 'debug')
        clean_env.setenv('CORS_ORIGINS', 'https://a.example, https://b.example')

        settings = Settings.from_env(dotenv=False)

        assert settings.database_url == 'postgresql://u:p@db:5432/pantry'
        assert settings.openai_api_key == 'sk-test'
        assert settings.openai_timeout == 15.0
        assert settings.auth_required is True
        assert settings.openfoodfacts_url == 'https://off.example'
        assert settings.log_level == 'DEBUG'
        assert settings.cors_origins == ['https://a.example', 'https://b.example']

    def test_bad_numbers_fall_back(self, clean_env):
        clean_env.setenv('MAX_IMAGE_BYTES', 'lots')
        clean_env.setenv('OPENAI_MAX_RETRIES', 'x')

        settings = Settings.from_env(dotenv=False)

        assert settings.max_image_bytes == 10 * 1024 * 1024
        assert settings.openai_max_retries == 2

    def test_normalize_database_url(self):
        assert normalize_database_url('postgres://h/db') == 'postgresql://h/db'
        assert normalize_database_url('sqlite://') == 'sqlite://'


class TestLogging:
    def test_coerce_level(self):
        assert coerce_level('debug') == logging.DEBUG
        assert coerce_level('WARN') == logging.WARNING
        assert coerce_level('nonsense') == logging.INFO
        assert coerce_level(logging.ERROR) == logging.ERROR

    def test_configure_logging_is_idempotent(self):
        configure_logging('INFO')
        configure_logging('DEBUG')

        root = logging.getLogger()
        ours = [h for h in root.handlers if getattr(h, '_pantry_handler', False)]
        assert len(ours) == 1
        assert root.level == logging.DEBUG
        configure_logging('WARNING')


def test_setup_database_creates_all_tables():
    assert setup_database.main(Settings(database_url='sqlite://', log_level='WARNING')) == 0
