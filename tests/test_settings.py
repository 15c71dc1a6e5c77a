from mediachat.settings import Settings, _load_from_env


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("MEDIACHAT_MAX_UPLOAD_BYTES", "2048")
    monkeypatch.setenv("MEDIACHAT_TOOL_SOURCES", "http://a.test, http://b.test")
    monkeypatch.setenv("MEDIACHAT_CORS_ORIGINS", '["https://chat.example.com"]')
    monkeypatch.setenv("GOOGLE_API_KEY", "key-123")

    settings = Settings.model_validate(_load_from_env())

    assert settings.max_upload_bytes == 2048
    assert settings.tool_sources == ["http://a.test", "http://b.test"]
    assert settings.cors_origins == ["https://chat.example.com"]
    assert settings.google_api_key == "key-123"


def test_defaults():
    settings = Settings()
    assert settings.max_upload_bytes == 10 * 1024 * 1024
    assert settings.prune_keep_last == 2
    assert settings.object_store_backend == "memory"
