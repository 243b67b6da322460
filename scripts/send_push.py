#!/usr/bin/env python3
# /// script
# requires-python = ">=3.11"
# dependencies = [
#   "httpx>=0.27.0",
# ]
# ///
"""
pairpush CLI - register devices and send test notifications via the API

Usage:
    send_push.py send USER_ID --type note --content "Hello"
    send_push.py send USER_ID --type image --image-url https://x/img.jpg --from-name Alex
    send_push.py register USER_ID FCM_TOKEN --device-info '{"os": "android"}'

Environment variables:
    - PAIRPUSH_API_URL: API endpoint (required)
    - PAIRPUSH_API_TOKEN: Bearer token (only if the server sets auth.token)

Exit codes:
    0 success, 2 request failed, 3 usage/configuration error
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import UTC, datetime
from typing import Any

import httpx


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments"""
    parser = argparse.ArgumentParser(
        description="Register devices and send push notifications through pairpush",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--verbose", action="store_true", help="Show detailed output")
    parser.add_argument("--json", action="store_true", help="Output results as JSON")
    subparsers = parser.add_subparsers(dest="command", required=True)

    send = subparsers.add_parser("send", help="Notify every device of a user")
    send.add_argument("recipient_id", help="Recipient user id")
    send.add_argument("--type", choices=["image", "note"], required=True, help="Notification kind")
    send.add_argument("--content", default="", help="Note text")
    send.add_argument("--image-url", default="", help="Shared image URL")
    send.add_argument("--from-name", default="Someone", help="Sender display name")

    register = subparsers.add_parser("register", help="Register a device token")
    register.add_argument("user_id", help="Owning user id")
    register.add_argument("token", help="Provider-issued push token")
    register.add_argument("--device-info", help="Device metadata as JSON object")

    return parser.parse_args(argv)


def load_config(environ: dict[str, str] | None = None) -> dict[str, str | None]:
    """Load API location from environment variables

    Returns:
        dict with keys: api_url, api_token
    """
    environ = os.environ if environ is None else environ
    api_url = environ.get("PAIRPUSH_API_URL")

    if not api_url:
        print("Error: PAIRPUSH_API_URL is not set", file=sys.stderr)
        print("  export PAIRPUSH_API_URL='https://push.example.com'", file=sys.stderr)
        sys.exit(3)

    return {
        "api_url": api_url.rstrip("/"),
        "api_token": environ.get("PAIRPUSH_API_TOKEN"),
    }


def build_request(args: argparse.Namespace) -> tuple[str, dict[str, Any]]:
    """Return (path, JSON body) for the chosen subcommand."""
    if args.command == "register":
        device_info: dict[str, Any] = {}
        if args.device_info:
            try:
                device_info = json.loads(args.device_info)
            except json.JSONDecodeError as e:
                print(f"Error: Invalid JSON in --device-info: {e}", file=sys.stderr)
                sys.exit(3)
            if not isinstance(device_info, dict):
                print("Error: --device-info must be a JSON object", file=sys.stderr)
                sys.exit(3)
        return "/register-device", {
            "userId": args.user_id,
            "token": args.token,
            "deviceInfo": device_info,
        }

    timestamp = datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return "/send-push", {
        "recipientId": args.recipient_id,
        "type": args.type,
        "content": args.content,
        "imageUrl": args.image_url,
        "fromName": args.from_name,
        "timestamp": timestamp,
    }


def call_api(
    api_url: str,
    api_token: str | None,
    path: str,
    payload: dict[str, Any],
    verbose: bool = False,
) -> dict[str, Any]:
    """POST to the API and return the JSON body

    Raises:
        SystemExit on error
    """
    endpoint = f"{api_url}{path}"
    headers = {"Content-Type": "application/json"}
    if api_token:
        headers["Authorization"] = f"Bearer {api_token}"

    if verbose:
        print(f"POST {endpoint}")
        print(f"Payload: {json.dumps(payload, indent=2)}")

    try:
        response = httpx.post(endpoint, json=payload, headers=headers, timeout=30.0)
    except httpx.TimeoutException:
        print(f"Error: Request timed out connecting to {api_url}", file=sys.stderr)
        sys.exit(2)
    except httpx.ConnectError:
        print(f"Error: Could not connect to {api_url}", file=sys.stderr)
        sys.exit(2)
    except httpx.HTTPError as e:
        print(f"Error: Request failed: {e}", file=sys.stderr)
        sys.exit(2)

    if verbose:
        print(f"Response status: {response.status_code}")

    if response.status_code == 401:
        print("Error: Invalid API token", file=sys.stderr)
        sys.exit(3)

    if response.status_code >= 400:
        error_msg = response.text
        try:
            error_msg = response.json().get("error", error_msg)
        except ValueError:
            pass
        print(f"Error: API request failed ({response.status_code}): {error_msg}", file=sys.stderr)
        sys.exit(2)

    return response.json()


def describe(result: dict[str, Any]) -> str:
    if "sentTo" not in result:
        return "✓ Device registered"
    if result["sentTo"] == 0:
        return "No registered devices for recipient"
    return f"✓ Sent to {result['succeeded']}/{result['sentTo']} device(s), {result['failed']} failed"


def main(argv: list[str] | None = None) -> int:
    """Main function"""
    args = parse_args(argv)
    config = load_config()
    path, payload = build_request(args)

    result = call_api(
        api_url=config["api_url"],  # type: ignore[arg-type]
        api_token=config["api_token"],
        path=path,
        payload=payload,
        verbose=args.verbose,
    )

    if args.json:
        print(json.dumps(result, indent=2))
    else:
        print(describe(result))

    return 0


if __name__ == "__main__":
    sys.exit(main())
