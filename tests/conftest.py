"""Test configuration and fixtures for textbook OCR tests."""

import pathlib
import tempfile
from unittest.mock import Mock, patch

import pytest

from factories import FakeModelClient
from textbook_ocr.data_types import ModelConfig
from textbook_ocr.server import create_app
from textbook_ocr.settings import Settings, reset_settings
from textbook_ocr.transformations import TransformationService

TEST_API_KEY = "test-api-key-123456"


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield pathlib.Path(tmp_dir)


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch, temp_dir):
    """Automatically isolate configuration and state for all tests."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(temp_dir / "config"))
    monkeypatch.setenv("XDG_STATE_HOME", str(temp_dir / "state"))
    monkeypatch.setenv("MISTRAL_API_KEY", TEST_API_KEY)
    for name in (
        "TEXTBOOK_OCR_TEXT_MODEL",
        "TEXTBOOK_OCR_VISION_MODEL",
        "TEXTBOOK_OCR_HOST",
        "TEXTBOOK_OCR_PORT",
        "TEXTBOOK_OCR_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def model_config():
    """Model configuration with a test key."""
    return ModelConfig(
        api_key=TEST_API_KEY,
        text_model="text-model",
        vision_model="vision-model",
        timeout_seconds=30,
    )


@pytest.fixture
def mock_mistral_client():
    """Patch the Mistral SDK class used by the model client."""
    with patch("textbook_ocr.model_client.Mistral") as mock_mistral:
        mock_client_instance = Mock()
        mock_mistral.return_value = mock_client_instance
        yield mock_client_instance


@pytest.fixture
def fake_model():
    """Scriptable stand-in for the model client."""
    return FakeModelClient()


@pytest.fixture
def service(fake_model):
    """Transformation service driven by the fake model client."""
    return TransformationService(fake_model)


@pytest.fixture
def app(service):
    """Flask application wired to the fake-backed service."""
    flask_app = create_app(Settings(), service=service)
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def http_client(app):
    """Flask test client."""
    return app.test_client()
