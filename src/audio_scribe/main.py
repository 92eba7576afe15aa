from __future__ import annotations

import argparse
import asyncio
import getpass
from pathlib import Path

from audio_scribe.app.headless import HeadlessRecorderRunner
from audio_scribe.app.wiring import create_api_key_store
from audio_scribe.config.paths import default_settings_path
from audio_scribe.config.settings import AppSettings, load_settings, save_settings
from audio_scribe.core.protocol.client import GeminiLiveClient
from audio_scribe.core.storage.api_keys import mask_api_key
from audio_scribe.core.storage.credentials import StoredCredentialProvider
from audio_scribe.logging_setup import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="audio-scribe")
    parser.add_argument("--version", action="store_true", help="Print version and exit")

    parser.add_argument(
        "--config",
        type=Path,
        default=default_settings_path(),
        help="Path to settings JSON (default: user config dir)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override the configured log level (DEBUG, INFO, WARNING, ...)",
    )
    parser.add_argument(
        "--no-log-file",
        action="store_true",
        help="Log to the console only",
    )

    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="Toggle recording with Enter; transcribed text goes to stdout")
    run.add_argument(
        "--no-mic",
        action="store_true",
        help="Do not open a microphone (connect and receive only)",
    )

    set_key = sub.add_parser("set-key", help="Store the Gemini API key")
    set_key.add_argument("key", nargs="?", default=None, help="API key (prompted when omitted)")

    sub.add_parser("clear-key", help="Remove the stored Gemini API key")
    sub.add_parser("verify-key", help="Check the stored key against Gemini Live")
    sub.add_parser("init-config", help="Write default settings to the config path")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        from . import __version__

        print(__version__)
        return 0

    try:
        settings = _load_settings_or_default(args.config)
    except (OSError, ValueError) as exc:
        print(f"Error: invalid settings file {args.config}: {exc}", flush=True)
        return 2

    log_file = None if args.no_log_file else args.config.parent / settings.logging.file_name
    try:
        configure_logging(
            args.log_level or settings.logging.level,
            log_file=log_file,
            max_bytes=settings.logging.max_bytes,
            backup_count=settings.logging.backup_count,
        )
    except ValueError as exc:
        print(f"Error: {exc}", flush=True)
        return 2

    if args.command == "init-config":
        save_settings(args.config, settings)
        print(f"Wrote {args.config}")
        return 0

    if args.command == "set-key":
        key = args.key or getpass.getpass("Enter your Gemini API key: ")
        key = (key or "").strip()
        if not key:
            print("Error: API key must be non-empty", flush=True)
            return 2
        try:
            create_api_key_store(settings.credentials).save(key)
        except Exception as exc:
            print(f"Error: failed to store API key: {exc}", flush=True)
            return 2
        print(f"Stored Gemini API key {mask_api_key(key)}")
        return 0

    if args.command == "clear-key":
        try:
            create_api_key_store(settings.credentials).clear()
        except Exception as exc:
            print(f"Error: failed to clear API key: {exc}", flush=True)
            return 2
        print("Cleared stored Gemini API key")
        return 0

    if args.command == "verify-key":
        provider = StoredCredentialProvider(
            store=create_api_key_store(settings.credentials),
            env_var=settings.credentials.env_var,
        )
        try:
            key = asyncio.run(provider.get_credential())
        except Exception as exc:
            print(f"Error: failed to read API key: {exc}", flush=True)
            return 2
        if not key:
            print(
                "Error: no Gemini API key found; run `audio-scribe set-key` "
                f"or set {settings.credentials.env_var}",
                flush=True,
            )
            return 2
        try:
            asyncio.run(
                GeminiLiveClient.verify_api_key(
                    key,
                    endpoint=settings.gemini.endpoint,
                    model=settings.gemini.model,
                )
            )
        except Exception as exc:
            print(f"Verification failed: {exc}", flush=True)
            return 1
        print("Verification successful")
        return 0

    if args.command == "run":
        try:
            runner = HeadlessRecorderRunner(settings=settings, use_mic=not args.no_mic)
            return asyncio.run(runner.run())
        except ValueError as exc:
            print(f"Error: {exc}", flush=True)
            return 2

    parser.print_help()
    return 2


def _load_settings_or_default(path: Path) -> AppSettings:
    if path.exists():
        return load_settings(path)
    return AppSettings()


if __name__ == "__main__":
    raise SystemExit(main())
