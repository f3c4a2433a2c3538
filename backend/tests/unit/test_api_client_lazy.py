import pytest

import journalflow.lib.api_client as api_client


def test_lazy_client_raises_clear_error_when_missing_url(monkeypatch):
    monkeypatch.setattr(api_client, "url", "")
    monkeypatch.setattr(api_client, "key", "k")
    monkeypatch.setattr(api_client.supabase, "_client", None)

    with pytest.raises(RuntimeError, match="SUPABASE_URL is required"):
        api_client.supabase.table("submissions")  # type: ignore[union-attr]


def test_lazy_client_raises_clear_error_when_missing_key(monkeypatch):
    monkeypatch.setattr(api_client, "url", "https://example.supabase.co")
    monkeypatch.setattr(api_client, "key", "")
    monkeypatch.setattr(api_client.supabase, "_client", None)

    with pytest.raises(RuntimeError, match="SUPABASE_ANON_KEY or SUPABASE_KEY is required"):
        api_client.supabase.table("submissions")  # type: ignore[union-attr]


def test_lazy_client_is_created_once(monkeypatch):
    created = []

    def _factory():
        created.append(1)
        return object()

    lazy = api_client._LazySupabaseClient(_factory, name="test")
    assert lazy._get() is lazy._get()
    assert created == [1]


def test_session_clients_are_independent_and_lazy(monkeypatch):
    created = []
    monkeypatch.setattr(api_client, "url", "https://example.supabase.co")
    monkeypatch.setattr(api_client, "key", "k")
    monkeypatch.setattr(api_client, "create_client", lambda u, k: created.append(u) or object())

    first = api_client.create_session_client()
    second = api_client.create_session_client()
    assert created == []

    assert first._get() is not second._get()  # type: ignore[attr-defined]
    assert len(created) == 2
