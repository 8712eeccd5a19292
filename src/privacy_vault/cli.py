"""CLI interface for privacy-vault.

Usage:
    # Tokenize (stdin: raw text, stdout: tokenized text)
    echo 'Write to ana@example.com' | privacy-vault anonymize

    # Restore (stdin: tokenized text, stdout: original text)
    echo 'Write to EMAIL_3f2a9c0d1b7e' | privacy-vault deanonymize

    # Relay a prompt through the completion service
    echo 'Draft a note to Ana Pérez' | privacy-vault relay --temperature 0.2

    # Inspect stored tokens
    privacy-vault lookup EMAIL_3f2a9c0d1b7e

    # Run the HTTP service
    privacy-vault serve --port 3001

The secret comes from VAULT_SECRET (never from argv).
"""

from __future__ import annotations
import argparse
import json
import logging
import sys
from dataclasses import replace

from .completion import CompletionParams
from .config import VaultSettings, create_completion, create_relay, load_settings
from .errors import VaultError
from .relay import SecureRelay

logger = logging.getLogger(__name__)


def _settings(args: argparse.Namespace) -> VaultSettings:
    settings = load_settings(args.config)
    if args.db:
        settings = replace(settings, db_path=args.db, store_backend="sqlite")
    if args.memory:
        settings = replace(settings, store_backend="memory")
    return settings


def cmd_anonymize(relay: SecureRelay, args: argparse.Namespace) -> None:
    """Tokenize PII in text from stdin."""
    result = relay.anonymize(sys.stdin.read())
    sys.stdout.write(result.text)


def cmd_deanonymize(relay: SecureRelay, args: argparse.Namespace) -> None:
    """Restore tokens in text from stdin."""
    sys.stdout.write(relay.deanonymize(sys.stdin.read()))


def cmd_relay(relay: SecureRelay, args: argparse.Namespace) -> None:
    """Send a prompt from stdin through tokenize → completion → detokenize."""
    params = CompletionParams.from_request(
        system_prompt=args.system_prompt,
        model=args.model,
        temperature=args.temperature,
        max_output_length=args.max_tokens,
    )
    relay.completion = create_completion(args.settings)
    prompt = sys.stdin.read()
    if args.stream:
        for piece in relay.relay_stream(prompt, params):
            sys.stdout.write(piece)
            sys.stdout.flush()
    else:
        sys.stdout.write(relay.relay(prompt, params))
    sys.stdout.write("\n")


def cmd_lookup(relay: SecureRelay, args: argparse.Namespace) -> None:
    """Print stored records for the given tokens as JSON."""
    store = relay.tokenizer.store
    out = {}
    for token in args.tokens:
        record = store.get(token)
        out[token] = None if record is None else {
            "original": record.original,
            "category": record.category,
            "createdAt": record.created_at.isoformat(),
        }
    json.dump(out, sys.stdout, indent=2, ensure_ascii=False)
    sys.stdout.write("\n")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="privacy-vault",
        description="Reversible PII tokenization for LLM prompts",
    )
    parser.add_argument("--config", default=None, help="YAML settings file")
    parser.add_argument("--db", default=None, help="SQLite token store path")
    parser.add_argument("--memory", action="store_true", help="Use a throwaway in-memory store")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("anonymize", help="Tokenize PII (stdin)")
    sub.add_parser("deanonymize", help="Restore tokens (stdin)")

    p_relay = sub.add_parser("relay", help="Relay a prompt (stdin) through the completion service")
    p_relay.add_argument("--system-prompt", default=None)
    p_relay.add_argument("--model", default=None)
    p_relay.add_argument("--temperature", type=float, default=None)
    p_relay.add_argument("--max-tokens", type=int, default=None)
    p_relay.add_argument("--stream", action="store_true", help="Print the response as it arrives")

    p_lookup = sub.add_parser("lookup", help="Show stored records for tokens")
    p_lookup.add_argument("tokens", nargs="+")

    p_serve = sub.add_parser("serve", help="Run the HTTP service")
    p_serve.add_argument("--host", default=None)
    p_serve.add_argument("--port", type=int, default=None)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    cmds = {
        "anonymize": cmd_anonymize,
        "deanonymize": cmd_deanonymize,
        "relay": cmd_relay,
        "lookup": cmd_lookup,
    }

    try:
        settings = _settings(args)
        if args.command == "serve":
            from .server import serve
            if args.host:
                settings = replace(settings, host=args.host)
            if args.port is not None:
                settings = replace(settings, port=args.port)
            serve(settings)
            return 0

        args.settings = settings
        relay = create_relay(settings)
        try:
            cmds[args.command](relay, args)
        finally:
            relay.tokenizer.store.close()
    except VaultError as e:
        sys.stderr.write(f"error: {e}\n")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
