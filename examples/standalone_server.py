"""Run a standalone restgate server for the APIs given on the command line."""

import argparse
import asyncio
import logging

from restgate import ApiDescriptor, EventServer, RestgateConfig, RestgatePlugin


async def run(apis: list[str], config: RestgateConfig) -> None:
    descriptors = []
    for spec in apis:
        name, _, url = spec.partition("=")
        descriptors.append(ApiDescriptor.from_url(name, url))

    server = EventServer(config)
    server.register_plugin(RestgatePlugin(descriptors, config=config))
    await server.start()
    try:
        await asyncio.Future()
    finally:
        await server.stop()


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser()
    parser.add_argument("api", nargs="+", help="name=url of a REST API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8080)
    parser.add_argument("--retries", type=int, default=3)
    parser.add_argument("--log-calls", action="store_true")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    logging.basicConfig(level=logging.INFO)
    config = RestgateConfig(host=args.host, port=args.port, retries=args.retries, logging=args.log_calls)
    asyncio.run(run(args.api, config))


if __name__ == "__main__":
    main()
