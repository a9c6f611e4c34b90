"""CLI entry point for onehttp.

Sends one request (or a timed series of requests) and prints the response.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx

from onehttp.codec import EncodingError
from onehttp.config_loader import ConfigError, load_transport_settings
from onehttp.dispatcher import RequestTimeoutError, SharedTransport
from onehttp.log import setup_logging
from onehttp.models import (
    HttpMethod,
    MediaType,
    NamingStrategy,
    NullValueHandling,
    RequestOptions,
    Response,
    TransportSettings,
)
from onehttp.request_builder import RequestBuildError
from onehttp.service import HttpService

MAX_REPEAT = 50

# Media types whose body is passed through as text rather than parsed as JSON
_TEXT_MEDIA_TYPES = (MediaType.PLAIN_TEXT, MediaType.UNKNOWN_TEXT)


def non_negative_float(value: str) -> float:
    """Parse and validate a non-negative float value.

    Raises:
        argparse.ArgumentTypeError: If value is not a number >= 0.
    """
    try:
        result = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid number '{value}'.")
    if result < 0:
        raise argparse.ArgumentTypeError(f"Value must not be negative, got {result}.")
    return result


def repeat_count(value: str) -> int:
    """Parse a repeat count between 1 and MAX_REPEAT."""
    try:
        result = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid integer '{value}'.")
    if not 1 <= result <= MAX_REPEAT:
        raise argparse.ArgumentTypeError(
            f"Repeat count must be between 1 and {MAX_REPEAT}, got {result}."
        )
    return result


def parse_header(value: str) -> tuple[str, str]:
    """Parse 'Name: value' format.

    Raises:
        argparse.ArgumentTypeError: If format is invalid.
    """
    if ":" not in value:
        raise argparse.ArgumentTypeError(
            f"Invalid header '{value}'. Expected 'Name: value' (e.g., 'Accept: application/json')"
        )
    name, header_value = value.split(":", 1)
    name = name.strip()
    if not name:
        raise argparse.ArgumentTypeError(f"Invalid header '{value}'. Name cannot be empty.")
    return (name, header_value.strip())


@dataclass
class SendArgs:
    """Parsed arguments for send mode."""

    method: HttpMethod
    url: str
    data: Any
    options: RequestOptions
    headers: list[tuple[str, str]] = field(default_factory=list)
    config: Path | None = None
    repeat: int | None = None
    log_level: str | None = None


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with the send subcommand."""
    parser = argparse.ArgumentParser(
        prog="onehttp",
        description="Send HTTP requests through the onehttp service and inspect the responses.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True, help="Command")

    send_parser = subparsers.add_parser(
        "send",
        help="Send a request and print the response",
    )
    send_parser.add_argument(
        "method",
        type=str.upper,
        choices=[m.value for m in HttpMethod],
        help="HTTP method",
    )
    send_parser.add_argument("url", help="Absolute http(s) URL")

    body_group = send_parser.add_mutually_exclusive_group()
    body_group.add_argument(
        "--data",
        type=str,
        default=None,
        help="Request body. Parsed as JSON for json/xml media types, sent as-is otherwise",
    )
    body_group.add_argument(
        "--data-file",
        type=Path,
        default=None,
        help="Read the request body from a file",
    )
    send_parser.add_argument(
        "--media-type",
        choices=[m.value for m in MediaType],
        default=MediaType.JSON.value,
        help="Request body encoding (default: json)",
    )
    send_parser.add_argument(
        "--naming",
        choices=[n.value for n in NamingStrategy],
        default=NamingStrategy.CAMEL_CASE.value,
        help="JSON key casing (default: camel-case)",
    )
    send_parser.add_argument(
        "--ignore-nulls",
        action="store_true",
        help="Omit null-valued JSON entries",
    )
    send_parser.add_argument(
        "--timeout",
        type=non_negative_float,
        default=0.0,
        help="Per-request deadline in seconds; only applies if shorter than the configured default",
    )
    send_parser.add_argument(
        "-H",
        "--header",
        type=parse_header,
        action="append",
        default=[],
        dest="headers",
        metavar="'NAME: VALUE'",
        help="Request header (can be repeated)",
    )
    send_parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML file with transport settings",
    )
    send_parser.add_argument(
        "--repeat",
        type=repeat_count,
        default=None,
        metavar="N",
        help=f"Send the request N times after a warm-up and report timings (max {MAX_REPEAT})",
    )
    send_parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Logging level (default: ONEHTTP_LOG_LEVEL or WARNING)",
    )

    return parser


def _read_body(
    parser: argparse.ArgumentParser,
    namespace: argparse.Namespace,
    media_type: MediaType,
) -> Any:
    if namespace.data_file is not None:
        try:
            if media_type is MediaType.RAW_BYTES:
                return namespace.data_file.read_bytes()
            raw = namespace.data_file.read_text(encoding="utf-8")
        except OSError as e:
            parser.error(f"Cannot read --data-file: {e}")
    elif namespace.data is not None:
        raw = namespace.data
    else:
        return None

    if media_type is MediaType.RAW_BYTES:
        return raw.encode("utf-8")
    if media_type in _TEXT_MEDIA_TYPES:
        return raw
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        parser.error(f"Request body is not valid JSON: {e}")


def parse_send_args(parser: argparse.ArgumentParser, namespace: argparse.Namespace) -> SendArgs:
    """Convert argparse namespace to SendArgs."""
    media_type = MediaType(namespace.media_type)
    options = RequestOptions(
        timeout_seconds=namespace.timeout,
        media_type=media_type,
        naming_strategy=NamingStrategy(namespace.naming),
        null_value_handling=(
            NullValueHandling.IGNORE if namespace.ignore_nulls else NullValueHandling.INCLUDE
        ),
    )
    return SendArgs(
        method=HttpMethod(namespace.method),
        url=namespace.url,
        data=_read_body(parser, namespace, media_type),
        options=options,
        headers=list(namespace.headers),
        config=namespace.config,
        repeat=namespace.repeat,
        log_level=namespace.log_level,
    )


def parse_args(args: list[str] | None = None) -> SendArgs:
    """Parse command-line arguments and return typed args dataclass.

    Args:
        args: Command-line arguments to parse. If None, uses sys.argv[1:].

    Raises:
        SystemExit: If arguments are invalid (argparse behavior).
    """
    parser = build_parser()
    namespace = parser.parse_args(args)
    if namespace.command == "send":
        return parse_send_args(parser, namespace)
    # Should not happen with required=True on subparsers
    parser.error(f"Unknown command: {namespace.command}")


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    try:
        parsed = parse_args(args)
        setup_logging(parsed.log_level)
        return run_send(parsed)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1


def run_send(args: SendArgs, transport: SharedTransport | None = None) -> int:
    """Run send mode.

    The CLI is its own composition root: unless a transport is injected it
    configures a private one and closes it before returning.
    """
    settings = TransportSettings()
    if args.config is not None:
        try:
            settings = load_transport_settings(args.config)
        except ConfigError as e:
            print(f"Error loading config: {e}", file=sys.stderr)
            return 2

    return asyncio.run(_run_send_async(args, settings, transport))


async def _run_send_async(
    args: SendArgs,
    settings: TransportSettings,
    transport: SharedTransport | None,
) -> int:
    owns_transport = transport is None
    if transport is None:
        transport = SharedTransport()
    service = HttpService(settings, transport=transport)

    try:
        if args.repeat is None:
            response = await _send_once(service, args)
            _print_response(response)
        else:
            response = await _send_repeated(service, args)
    except RequestBuildError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except EncodingError as e:
        print(f"Error encoding request body: {e}", file=sys.stderr)
        return 1
    except RequestTimeoutError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except httpx.HTTPError as e:
        print(f"Transport error: {type(e).__name__}: {e}", file=sys.stderr)
        return 1
    finally:
        if owns_transport:
            await transport.aclose()

    return 0 if response.is_success_status_code else 1


async def _send_once(service: HttpService, args: SendArgs) -> Response:
    return await service.send(args.method, args.url, args.data, args.headers, args.options)


async def _send_repeated(service: HttpService, args: SendArgs) -> Response:
    """Send a warm-up request, then args.repeat timed requests.

    Overhead is wall-clock time around each call minus the elapsed time the
    response itself reports.
    """
    await _send_once(service, args)

    overheads: list[float] = []
    response: Response | None = None
    for i in range(1, args.repeat + 1):
        start_time = time.perf_counter()
        response = await _send_once(service, args)
        wall_ms = (time.perf_counter() - start_time) * 1000
        overheads.append(wall_ms - response.elapsed_ms)
        print(f"Request {i}: {response.status_code} in {response.elapsed_ms:.1f} ms")

    average = sum(overheads) / len(overheads)
    print(f"Average client overhead: {average:.2f} ms over {len(overheads)} requests")
    return response


def _print_response(response: Response) -> None:
    print(f"Status: {response.status_code}")
    for name, value in response.headers.items():
        print(f"{name}: {value}")
    print()
    if response.response_body:
        print(response.response_body)
    print(f"Elapsed: {response.elapsed_ms:.1f} ms")


if __name__ == "__main__":
    sys.exit(main())
