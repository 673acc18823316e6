"""Command line entry point for Marginalia."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO, get_args, get_origin, get_type_hints

from .annotations.models import AnalysisMode, Annotation, AnnotationType
from .services.settings import Settings, SettingsStore, active_env_overrides, redact_secret
from .ui.application.workbench import Workbench
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_LOGGER = logging.getLogger(__name__)
_ANALYSIS_MODES = [mode.value for mode in AnalysisMode if mode is not AnalysisMode.NONE]


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    level = logging.DEBUG if debug else logging.INFO
    console_level = logging.DEBUG if debug else logging.WARNING
    logging_utils.setup_logging(level, console_level=console_level, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        return active_store.load(overrides=overrides)
    except (OSError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        return Settings()


def main(argv: Sequence[str] | None = None, *, stream: TextIO | None = None) -> int:
    """Entry point invoked by the `marginalia` console script."""

    parser = _build_parser()
    args = parser.parse_args(argv)
    output = stream or sys.stdout
    debug = args.debug or _env_flag("MARGINALIA_DEBUG")
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("MARGINALIA_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return 2
    settings = load_settings(resolved_path, store=settings_store, overrides=cli_overrides or None)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides, stream=output)
        return 0
    if settings.debug_logging and not debug:
        configure_logging(True, force=True)

    if args.command is None:
        parser.print_help(output)
        return 2

    try:
        text = args.path.read_text(encoding="utf-8")
    except OSError as exc:
        print(f"Unable to read {args.path}: {exc}", file=sys.stderr)
        return 1

    workbench = Workbench(settings=settings)
    workbench.load_text(text, key=str(args.path), path=str(args.path))

    if args.command == "annotate":
        try:
            response = args.response.read_text(encoding="utf-8")
        except OSError as exc:
            print(f"Unable to read {args.response}: {exc}", file=sys.stderr)
            return 1
        annotations = workbench.annotate_response(response, args.type)
        _write_json(output, _annotation_report(args.path, annotations))
        return 0

    if args.command == "passive":
        annotations = workbench.run_passive_voice()
        _write_json(output, _annotation_report(args.path, annotations))
        return 0

    return asyncio.run(_run_analysis(workbench, args.path, args.mode, output))


async def _run_analysis(workbench: Workbench, path: Path, mode: str, output: TextIO) -> int:
    try:
        outcome = await workbench.run_analysis(mode)
    finally:
        await workbench.aclose()
    report = _annotation_report(path, outcome.annotations)
    report["status"] = outcome.status
    report["response"] = outcome.response_text
    if outcome.error is not None:
        report["error"] = outcome.error
    _write_json(output, report)
    return 0 if outcome.ok else 1


def _annotation_report(path: Path, annotations: Sequence[Annotation]) -> Dict[str, Any]:
    return {
        "file": str(path),
        "count": len(annotations),
        "annotations": [annotation.to_dict() for annotation in annotations],
    }


def _write_json(stream: TextIO, payload: Mapping[str, Any]) -> None:
    json.dump(payload, stream, indent=2, ensure_ascii=False)
    stream.write("\n")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="marginalia",
        description="Locate AI critique inside prose documents and print the resulting annotations as JSON.",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload (with secrets redacted) and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.marginalia/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings for this run (repeatable).",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")

    commands = parser.add_subparsers(dest="command")
    annotate = commands.add_parser("annotate", help="Annotate a document from a saved AI response.")
    annotate.add_argument("path", type=Path)
    annotate.add_argument("--response", type=Path, required=True, help="File holding the AI response text.")
    annotate.add_argument(
        "--type",
        choices=[item.value for item in AnnotationType],
        default=None,
        help="Force every annotation to this type instead of inferring it.",
    )

    passive = commands.add_parser("passive", help="Flag passive voice with the local detector.")
    passive.add_argument("path", type=Path)

    analyze = commands.add_parser("analyze", help="Run an AI analysis against the configured provider.")
    analyze.add_argument("path", type=Path)
    analyze.add_argument("--mode", choices=_ANALYSIS_MODES, required=True)
    return parser


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides
    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        annotation = type_hints.get(key, fields[key].type)
        overrides[key] = _coerce_value(annotation, raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    target = _resolve_annotation(annotation)
    normalized = raw_value.strip()
    if target is str or target is Any:
        return normalized
    if target is bool:
        return _parse_bool(normalized)
    if target is int:
        return int(normalized, 10)
    if target is float:
        return float(normalized)
    if target is type(None) or normalized.lower() in {"none", "null"}:
        return None
    if target is dict:
        try:
            return json.loads(normalized or "{}")
        except json.JSONDecodeError as exc:
            raise ValueError("Dict overrides must be valid JSON objects") from exc
    if is_dataclass(target):
        raise ValueError("Nested settings cannot be overridden from the command line")
    return normalized


def _resolve_annotation(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation
    if origin in {list, dict}:
        return origin
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if not args:
        return origin
    return args[0]


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    payload = asdict(settings)
    payload["api_key"] = redact_secret(payload.get("api_key", ""))
    metadata = {
        "path": str(store.path),
        "secret_backend": store.vault.strategy,
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": active_env_overrides(),
    }
    _write_json(destination, {"settings": payload, "meta": metadata})


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
