from app.config import Settings
from app.providers.factory import get_resolver


def test_provider_default_ytdlp(monkeypatch):
    monkeypatch.delenv("RESOLVER", raising=False)
    resolver = get_resolver(Settings())
    assert resolver.__class__.__name__ == "YtDlpResolver"


def test_provider_mates_from_env(monkeypatch):
    monkeypatch.setenv("RESOLVER", "MATES")
    monkeypatch.setenv("MATES_BASE_URL", "https://mates.example/")
    resolver = get_resolver(Settings())
    assert resolver.__class__.__name__ == "MatesResolver"
    assert resolver.base_url == "https://mates.example"
    resolver.close()
