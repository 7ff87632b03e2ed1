"""Command-line interface for the MCP OAuth debugger.

Usage:
    oauth-debugger run https://mcp.example.com/mcp
    oauth-debugger run https://mcp.example.com/mcp --protocol-version 2025-06-18 --auto
    oauth-debugger discover https://mcp.example.com/mcp --auth-server https://auth.example.com
    oauth-debugger versions
    oauth-debugger relay --port 6274
"""

import argparse
import asyncio
import json
import sys
import webbrowser
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

from . import __version__
from .callback import CallbackServer, parse_callback_url
from .core.config import FlowConfig, Settings
from .core.factory import create_oauth_state_machine
from .core.report import generate_guide_text
from .core.state import FlowStateStore, HttpHistoryEntry
from .core.state_machine import OAuthStateMachine
from .core.steps import FlowStep, get_step_info
from .oauth.discovery import build_auth_server_metadata_urls, build_resource_metadata_url
from .oauth.protocols import PROFILES, ProtocolVersion, RegistrationStrategy, get_profile
from .proxy.client import DirectFetcher, RelayProxyClient
from .proxy.server import create_app
from .utils.errors import ConfigurationError
from .utils.logging_config import setup_logging


def _parse_headers(values: list[str] | None) -> dict[str, str]:
    headers = {}
    for value in values or []:
        name, sep, content = value.partition(":")
        if not sep or not name.strip():
            raise ValueError(f"Invalid header (expected NAME:VALUE): {value}")
        headers[name.strip()] = content.strip()
    return headers


def _print_entry(entry: HttpHistoryEntry) -> None:
    print(f"  → {entry.request.method} {entry.request.url}")
    if entry.response is not None:
        print(f"  ← {entry.response.status} {entry.response.status_text}")
        if entry.response.body is not None:
            body = entry.response.body
            text = body if isinstance(body, str) else json.dumps(body, indent=2)
            print("    " + text.replace("\n", "\n    "))


async def _prompt(message: str) -> str:
    return (await asyncio.to_thread(input, message)).strip()


async def _deliver_code(
    machine: OAuthStateMachine,
    store: FlowStateStore,
    callback: CallbackServer | None,
    open_browser: bool,
) -> bool:
    """Send the operator to the authorization URL and collect the redirect."""
    url = store.state.authorization_url
    print(f"\n🔗 Authorization URL:\n{url}\n")
    if open_browser and url:
        webbrowser.open(url)

    if callback is not None:
        print("⏳ Waiting for authorization callback...")
        result = await callback.wait()
        if result is None or result.error:
            return False
    else:
        redirect = await _prompt("Paste the full redirect URL: ")
        result = parse_callback_url(redirect)
        if result.error or not result.code:
            print(f"❌ Authorization failed: {result.error or 'no code in URL'}")
            return False
        machine.submit_authorization_code(result.code, result.state)

    return store.state.current_step != FlowStep.AUTHORIZATION_REQUEST


async def run_flow(args: argparse.Namespace, settings: Settings) -> int:
    """Walk the authorization flow step by step."""
    try:
        custom_headers = _parse_headers(args.header)
    except ValueError as e:
        print(f"❌ {e}")
        return 2

    config = FlowConfig.from_settings(
        settings,
        args.server_url,
        protocol_version=args.protocol_version,
        registration_strategy=args.registration,
        custom_scopes=args.scopes,
        custom_headers=custom_headers,
        redirect_url=args.redirect_url,
        client_metadata_url=args.client_metadata_url,
    )
    if (
        config.registration_strategy is None
        and get_profile(config.protocol_version).default_strategy == RegistrationStrategy.CIMD
        and not config.client_metadata_url
    ):
        print("ℹ️  No client metadata URL configured, using dynamic client registration")
        config.registration_strategy = RegistrationStrategy.DCR

    relay_url = args.relay_url or settings.relay_url
    fetcher = (
        RelayProxyClient(relay_url, settings.request_timeout)
        if relay_url
        else DirectFetcher(settings.request_timeout)
    )

    store = FlowStateStore()
    try:
        machine = create_oauth_state_machine(config, fetcher, store.get_state, store.update_state)
    except ConfigurationError as e:
        print(f"❌ {e}")
        return 2

    callback = None
    if not args.paste:
        callback = CallbackServer(config.redirect_url, machine.submit_authorization_code)
        await callback.start()

    print(f"\n{'=' * 70}")
    print(f"MCP OAuth Debugger {__version__}")
    print(f"{'=' * 70}")
    print(f"Server: {config.server_url}")
    print(f"Protocol: {machine.profile.label}")
    print(f"Registration: {machine.registration.strategy.value}\n")

    try:
        while store.state.current_step != FlowStep.COMPLETE:
            state = store.state
            if state.current_step == FlowStep.AUTHORIZATION_REQUEST:
                if not await _deliver_code(machine, store, callback, not args.no_browser):
                    print(f"❌ {store.state.error or 'No authorization code received'}")
                    return 1
                continue

            info = get_step_info(state.current_step)
            print(f"\n▶ {info.title}: {info.summary}")
            if not args.auto:
                answer = await _prompt("[Enter] next step, [r] reset, [q] quit: ")
                if answer == "q":
                    break
                if answer == "r":
                    machine.reset_flow()
                    continue

            before = state
            await machine.proceed_to_next_step()
            state = store.state
            for index, entry in enumerate(state.http_history):
                if index >= len(before.http_history) or before.http_history[index] is not entry:
                    _print_entry(entry)

            if state.error:
                print(f"⚠️  {state.error}")
                if args.auto and state.current_step == before.current_step:
                    return 1
    finally:
        if callback is not None:
            await callback.stop()

    state = store.state
    if state.current_step == FlowStep.COMPLETE:
        print(f"\n{'=' * 70}")
        print("✅ Flow complete: the MCP server accepted the access token")
        print(f"{'=' * 70}")

    if args.report:
        args.report.write_text(generate_guide_text(state))
        print(f"\n💾 Guide written to {args.report}")
    return 0 if state.current_step == FlowStep.COMPLETE else 1


def discover(args: argparse.Namespace) -> int:
    """Print the discovery URLs a protocol version would try."""
    print(f"Protected resource metadata: {build_resource_metadata_url(args.url)}")
    auth_server = args.auth_server or args.url
    print(f"\nAuthorization server metadata candidates ({args.protocol_version}):")
    for index, candidate in enumerate(
        build_auth_server_metadata_urls(auth_server, args.protocol_version), start=1
    ):
        print(f"  {index}. {candidate}")
    return 0


def versions() -> int:
    """Print the supported protocol versions."""
    for profile in PROFILES.values():
        strategies = ", ".join(s.value for s in profile.registration_strategies)
        print(f"{profile.label}: {profile.description}")
        print(f"  Registration: {strategies} (default {profile.default_strategy.value})")
        for feature in profile.features:
            print(f"  - {feature}")
        print()
    return 0


def relay(args: argparse.Namespace, settings: Settings) -> int:
    """Run the relay server."""
    uvicorn.run(
        create_app(settings),
        host=args.host or settings.relay_host,
        port=args.port or settings.relay_port,
        log_level=settings.log_level.lower(),
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="oauth-debugger",
        description="Step-by-step debugger for the MCP OAuth authorization flow",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", help="Logging level (default: LOG_LEVEL or INFO)")
    parser.add_argument("--log-file", type=Path, help="Also write logs to this file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    versions_choices = [v.value for v in ProtocolVersion]

    run = subparsers.add_parser("run", help="Walk the authorization flow against a server")
    run.add_argument("server_url", help="MCP server URL")
    run.add_argument("--protocol-version", choices=versions_choices)
    run.add_argument("--registration", choices=[s.value for s in RegistrationStrategy])
    run.add_argument("--scopes", help="Space-separated scopes to request")
    run.add_argument(
        "--header", action="append", help="Extra MCP request header NAME:VALUE (repeatable)"
    )
    run.add_argument("--redirect-url", help="Redirect URI (default from settings)")
    run.add_argument("--client-metadata-url", help="HTTPS client_id URL for CIMD")
    run.add_argument("--relay-url", help="Send requests through this relay instead of directly")
    run.add_argument("--auto", action="store_true", help="Advance without prompting")
    run.add_argument("--paste", action="store_true", help="Paste the redirect URL instead of running a callback server")
    run.add_argument("--no-browser", action="store_true", help="Do not open a browser")
    run.add_argument("--report", type=Path, help="Write a plain-text guide of the flow to this file")

    disc = subparsers.add_parser("discover", help="Show discovery URLs without sending requests")
    disc.add_argument("url", help="MCP server URL")
    disc.add_argument("--auth-server", help="Authorization server issuer URL")
    disc.add_argument(
        "--protocol-version", choices=versions_choices, default=ProtocolVersion.V2025_11_25.value
    )

    subparsers.add_parser("versions", help="List supported protocol versions")

    relay_parser = subparsers.add_parser("relay", help="Run the relay server")
    relay_parser.add_argument("--host", help="Bind host")
    relay_parser.add_argument("--port", type=int, help="Bind port")

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    settings = Settings()
    setup_logging(
        "oauth_debugger",
        level=args.log_level or settings.log_level,
        log_file=args.log_file or settings.log_file,
    )

    if args.command == "run":
        try:
            return asyncio.run(run_flow(args, settings))
        except KeyboardInterrupt:
            print("\n⚠️  Interrupted")
            return 130
    if args.command == "discover":
        return discover(args)
    if args.command == "versions":
        return versions()
    if args.command == "relay":
        return relay(args, settings)
    return 2


if __name__ == "__main__":
    sys.exit(main())
