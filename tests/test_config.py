"""
Tests for settings loading and logging setup.
"""

import logging

import pytest
from pydantic import ValidationError

from taiga_query.config import DEFAULT_API_URL, Settings, configure_logging, load_settings


class TestSettings:
    """Test cases for Settings and load_settings."""

    def test_defaults(self):
        """Test default values without a file or environment."""
        settings = load_settings(environ={})

        assert settings.api_url == DEFAULT_API_URL
        assert settings.page_size == 100
        assert settings.query_timeout == 30.0
        assert settings.max_complexity == 10.0
        assert settings.task_fetch_concurrency == 5
        assert settings.auth_token is None

    def test_yaml_under_taiga_key(self, tmp_path):
        """Test loading a config file with a taiga section."""
        path = tmp_path / 'config.yaml'
        path.write_text(
            'taiga:\n'
            '  api_url: https://taiga.example.com/api/v1/\n'
            '  username: alice\n'
            '  page_size: 25\n'
            '  unrelated: ignored\n'
        )

        settings = load_settings(str(path), environ={})

        assert settings.api_url == 'https://taiga.example.com/api/v1'
        assert settings.username == 'alice'
        assert settings.page_size == 25

    def test_flat_yaml(self, tmp_path):
        """Test loading a flat config file."""
        path = tmp_path / 'config.yaml'
        path.write_text('query_timeout: 5\nlog_level: debug\n')

        settings = load_settings(str(path), environ={})

        assert settings.query_timeout == 5.0
        assert settings.log_level == 'DEBUG'

    def test_environment_overrides_file(self, tmp_path):
        """Test that TAIGA_* variables win over the file."""
        path = tmp_path / 'config.yaml'
        path.write_text('taiga:\n  page_size: 25\n  username: alice\n')

        settings = load_settings(str(path), environ={
            'TAIGA_PAGE_SIZE': '50',
            'TAIGA_AUTH_TOKEN': 'abc',
            'TAIGA_USERNAME': '',
        })

        assert settings.page_size == 50
        assert settings.auth_token == 'abc'
        assert settings.username == 'alice'

    def test_empty_file(self, tmp_path):
        """Test that an empty file yields defaults."""
        path = tmp_path / 'config.yaml'
        path.write_text('')
        assert load_settings(str(path), environ={}).page_size == 100

    def test_non_mapping_file(self, tmp_path):
        """Test that a YAML list is rejected."""
        path = tmp_path / 'config.yaml'
        path.write_text('- a\n- b\n')
        with pytest.raises(ValueError):
            load_settings(str(path), environ={})

    def test_invalid_values(self):
        """Test that out-of-range values fail validation."""
        with pytest.raises(ValidationError):
            load_settings(environ={'TAIGA_PAGE_SIZE': '0'})
        with pytest.raises(ValidationError):
            Settings(log_level='LOUD')


class TestLogging:
    """Test cases for configure_logging."""

    def test_debug_flag(self):
        configure_logging(debug=True)
        assert logging.getLogger('taiga_query').level == logging.DEBUG

    def test_named_level(self):
        configure_logging('warning')
        assert logging.getLogger('taiga_query').level == logging.WARNING
