"""Call an endpoint event through restgate and print the response."""

import argparse
import asyncio
import json

from restgate import EventClient


async def run(url: str, api: str, method: str, endpoint: str, params: str, broadcast: bool) -> None:
    async with EventClient(url) as client:
        request = client.request(api).method(method).endpoint(endpoint).params(json.loads(params))
        if broadcast:
            request.broadcast()
        response = await request.execute()
        print(json.dumps(response, indent=2))


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser()
    parser.add_argument("--api", required=True)
    parser.add_argument("--endpoint", required=True)
    parser.add_argument("--method", default="GET")
    parser.add_argument("--params", default="{}")
    parser.add_argument("--broadcast", action="store_true")
    parser.add_argument("--url", default="ws://127.0.0.1:8080")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    asyncio.run(run(args.url, args.api, args.method, args.endpoint, args.params, args.broadcast))


if __name__ == "__main__":
    main()
