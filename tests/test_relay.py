"""Tests for the secure relay, streaming detokenizer and config loading."""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import re
from dataclasses import replace

import pytest

from privacy_vault import (
    CompletionFailedError, CompletionParams, ConfigurationError, Detokenizer,
    InvalidInputError, MemoryTokenStore, SecureRelay, SqliteTokenStore,
    StoreUnavailableError, StreamingDetokenizer, Tokenizer,
)
from privacy_vault.config import (
    VaultSettings, create_relay, create_store, load_config, load_from_env, load_from_yaml,
)


class StubCompletion:
    """Records every prompt it sees and answers with a canned reply."""

    def __init__(self, reply=None, chunks=None, error=None):
        self.reply = reply
        self.chunks = chunks
        self.error = error
        self.prompts = []
        self.params = []

    def complete(self, prompt, params):
        self.prompts.append(prompt)
        self.params.append(params)
        if self.error:
            raise self.error
        return prompt if self.reply is None else self.reply(prompt)

    def stream(self, prompt, params):
        self.prompts.append(prompt)
        self.params.append(params)
        for chunk in self.chunks(prompt):
            yield chunk
        if self.error:
            raise self.error


def _relay(completion=None, store=None):
    store = store or MemoryTokenStore()
    return SecureRelay(Tokenizer(store, "relay-secret"), Detokenizer(store), completion)


# ── Relay ────────────────────────────────────────────────────────────

def test_relay_never_sends_raw_pii():
    stub = StubCompletion()
    relay = _relay(stub)
    answer = relay.relay("My email is a@b.com")

    assert len(stub.prompts) == 1
    sent = stub.prompts[0]
    assert "a@b.com" not in sent
    assert re.search(r"EMAIL_[0-9a-f]{12}", sent)
    # Echoing stub: the restored response is the original prompt
    assert answer == "My email is a@b.com"


def test_relay_restores_tokens_in_response():
    def reply(prompt):
        token = re.search(r"NAME_[0-9a-f]{12}", prompt).group()
        return f"Dear {token}, thanks for writing."

    relay = _relay(StubCompletion(reply))
    answer = relay.relay("Please greet Ana Pérez warmly")
    assert answer == "Dear Ana Pérez, thanks for writing."


def test_relay_passes_params():
    stub = StubCompletion()
    params = CompletionParams(system_prompt="Be brief.", model="m-1", temperature=0.1, max_output_length=64)
    _relay(stub).relay("hello there", params)
    assert stub.params == [params]


def test_relay_aborts_when_tokenization_fails(tmp_path):
    store = SqliteTokenStore(tmp_path / "tokens.db")
    store.close()
    stub = StubCompletion()
    with pytest.raises(StoreUnavailableError):
        _relay(stub, store).relay("My email is a@b.com")
    assert stub.prompts == []


def test_relay_rejects_blank_prompt():
    stub = StubCompletion()
    with pytest.raises(InvalidInputError):
        _relay(stub).relay("   ")
    assert stub.prompts == []


def test_relay_wraps_completion_failure():
    stub = StubCompletion(error=TimeoutError("upstream timed out"))
    with pytest.raises(CompletionFailedError) as info:
        _relay(stub).relay("My email is a@b.com")
    assert isinstance(info.value.__cause__, TimeoutError)
    assert "a@b.com" not in str(info.value)


def test_relay_without_completion_client():
    with pytest.raises(ConfigurationError):
        _relay().relay("hello")


def test_relay_completion_override():
    default, override = StubCompletion(), StubCompletion()
    _relay(default).relay("hi a@b.com", completion=override)
    assert default.prompts == []
    assert len(override.prompts) == 1


def test_relay_empty_response():
    assert _relay(StubCompletion(lambda p: "")).relay("hi a@b.com") == ""


def test_relay_stream_restores_split_tokens():
    def chunks(prompt):
        token = re.search(r"EMAIL_[0-9a-f]{12}", prompt).group()
        reply = f"Sure, I'll write to {token} today."
        return [reply[i:i + 4] for i in range(0, len(reply), 4)]

    stub = StubCompletion(chunks=chunks)
    pieces = list(_relay(stub).relay_stream("Email a@b.com please", CompletionParams()))
    assert "a@b.com" not in stub.prompts[0]
    assert "".join(pieces) == "Sure, I'll write to a@b.com today."


def test_relay_stream_tokenizes_before_iteration():
    stub = StubCompletion(chunks=lambda p: [p])
    with pytest.raises(InvalidInputError):
        _relay(stub).relay_stream("")


def test_relay_stream_wraps_failure():
    stub = StubCompletion(chunks=lambda p: ["partial "], error=ConnectionError("reset"))
    gen = _relay(stub).relay_stream("hi a@b.com")
    with pytest.raises(CompletionFailedError):
        list(gen)


def test_relay_stream_failure_keeps_only_completed_pieces():
    stub = StubCompletion(chunks=lambda p: [p + " now and ", "PHONE_12"], error=TimeoutError("slow"))
    pieces = []
    with pytest.raises(CompletionFailedError) as info:
        for piece in _relay(stub).relay_stream("mail a@b.com"):
            pieces.append(piece)
    assert isinstance(info.value.__cause__, TimeoutError)
    # The partial word held back at the failure point is never emitted
    assert pieces == ["mail a@b.com now and "]


# ── Streaming detokenizer ────────────────────────────────────────────

def _streamer():
    store = MemoryTokenStore()
    tok = Tokenizer(store, "s")
    detok = Detokenizer(store)
    return tok, StreamingDetokenizer(detok)


def test_streaming_holds_partial_token():
    tok, stream = _streamer()
    token = tok.tokenize("x@y.org").text
    assert stream.feed("to " + token[:8]) == "to "
    assert stream.feed(token[8:]) == ""
    assert stream.feed(" now") == "x@y.org "
    assert stream.flush() == "now"


def test_streaming_char_by_char():
    tok, stream = _streamer()
    tokenized = tok.tokenize("Call Ana Pérez at 555-123-4567.").text
    out = "".join(stream.feed(c) for c in tokenized) + stream.flush()
    assert out == "Call Ana Pérez at 555-123-4567."


def test_streaming_long_word_passthrough():
    _, stream = _streamer()
    word = "a" * 30
    assert stream.feed(word) == word
    assert stream.feed("bbb") == "bbb"
    assert stream.feed(" EMAIL_deadbeef0000 ") == " EMAIL_deadbeef0000 "
    assert stream.flush() == ""


def test_streaming_unknown_token_kept():
    _, stream = _streamer()
    out = stream.feed("see EMAIL_deadbeef0000") + stream.flush()
    assert out == "see EMAIL_deadbeef0000"


# ── Completion params ────────────────────────────────────────────────

def test_params_from_request_defaults():
    p = CompletionParams.from_request(temperature="hot", max_output_length=None, system_prompt="")
    assert p == CompletionParams()


def test_params_from_request_values():
    p = CompletionParams.from_request(system_prompt="Be terse.", model="gpt-x", temperature=0, max_output_length=100)
    assert p.system_prompt == "Be terse."
    assert p.model == "gpt-x"
    assert p.temperature == 0.0
    assert p.max_output_length == 100


def test_openai_client_requires_key(monkeypatch):
    from privacy_vault.completion import OpenAICompletionClient
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(ConfigurationError):
        OpenAICompletionClient()


# ── Config ───────────────────────────────────────────────────────────

def test_load_config_nested():
    settings = load_config({
        "privacy_vault": {
            "secret": "abc",
            "store": {"backend": "memory"},
            "server": {"port": 8080},
            "openai": {"model": "gpt-4o", "timeout": 5},
        },
    })
    assert settings.secret == "abc"
    assert settings.store_backend == "memory"
    assert settings.port == 8080
    assert settings.openai_model == "gpt-4o"
    assert settings.completion_timeout == 5.0
    assert settings.max_body_bytes == 256 * 1024


def test_load_config_rejects_unknown_backend():
    with pytest.raises(ConfigurationError):
        load_config({"store": {"backend": "mongo"}})


def test_load_config_blank_values_use_defaults(caplog):
    settings = load_config({
        "privacy_vault": {
            "secret": None,
            "store": {"backend": None, "path": None},
            "server": {"port": None, "max_body_bytes": None},
            "openai": {"timeout": None, "model": None},
        },
    })
    assert settings == VaultSettings()
    assert settings.secret == ""

    with caplog.at_level("WARNING", logger="privacy_vault.config"):
        create_relay(replace(settings, store_backend="memory"))
    assert "VAULT_SECRET is empty" in caplog.text


def test_load_from_yaml_blank_secret(tmp_path):
    path = tmp_path / "vault.yaml"
    path.write_text("privacy_vault:\n  secret:\n  server:\n    port:\n", encoding="utf-8")
    settings = load_from_yaml(path)
    assert settings.secret == ""
    assert settings.port == VaultSettings().port


def test_load_from_yaml(tmp_path):
    path = tmp_path / "vault.yaml"
    path.write_text(
        "privacy_vault:\n"
        "  secret: from-yaml\n"
        "  store:\n"
        f"    path: {tmp_path / 'tokens.db'}\n",
        encoding="utf-8",
    )
    settings = load_from_yaml(path)
    assert settings.secret == "from-yaml"
    assert settings.db_path == str(tmp_path / "tokens.db")


def test_env_overrides_file():
    base = VaultSettings(secret="file", port=1)
    settings = load_from_env({"VAULT_SECRET": "env", "PORT": "9000", "VAULT_STORE": "memory"}, base=base)
    assert settings.secret == "env"
    assert settings.port == 9000
    assert settings.store_backend == "memory"


def test_create_relay_wires_one_store(tmp_path):
    settings = VaultSettings(secret="k", db_path=str(tmp_path / "tokens.db"))
    store = create_store(settings)
    relay = create_relay(settings, store=store)
    assert relay.tokenizer.store is store
    assert relay.detokenizer.store is store
    tokenized = relay.anonymize("mail a@b.com").text
    assert relay.deanonymize(tokenized) == "mail a@b.com"
    store.close()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
