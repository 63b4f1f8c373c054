# surety_oracle/probe.py
"""
Health probe for a running oracle server.

Usage:
  python3 -m surety_oracle.probe                       # http://127.0.0.1:3000
  python3 -m surety_oracle.probe --url http://host:3001 --oracles
"""

import argparse
import sys

import httpx


def check_health(base_url: str, timeout: float = 5.0) -> dict:
    resp = httpx.get(f"{base_url}/health", timeout=timeout)
    resp.raise_for_status()
    return resp.json()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Probe the oracle server health endpoint")
    parser.add_argument("--url", default="http://127.0.0.1:3000")
    parser.add_argument("--oracles", action="store_true", help="Also list registered oracles")
    args = parser.parse_args(argv)

    try:
        data = check_health(args.url)
    except httpx.HTTPError as e:
        print(f"✗ Health check failed: {e}")
        return 1

    listener = data.get("listener", {})
    print(f"  Status:     {data.get('status')}")
    print(f"  Phase:      {data.get('phase', 'n/a')}")
    print(f"  Oracles:    {data.get('oracles', 'n/a')}")
    print(f"  In flight:  {data.get('in_flight', 'n/a')}")
    print(f"  Reconnects: {listener.get('reconnects', 'n/a')}")
    if listener.get("last_error"):
        print(f"  Last error: {listener['last_error']}")

    if args.oracles:
        resp = httpx.get(f"{args.url}/oracles", timeout=5)
        for address, indexes in resp.json().get("oracles", {}).items():
            print(f"    {address} -> {indexes}")

    return 0 if data.get("status") == "ok" else 1


if __name__ == "__main__":
    sys.exit(main())
