from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Mapping, Sequence

import uvicorn

from .api import create_app
from .config import (
    DEFAULT_CAPABILITIES_URL,
    DEFAULT_CHROME_CONTAINERS,
    DEFAULT_DOCKER_URL,
    DEFAULT_FIREFOX_CONTAINERS,
    DEFAULT_MAX_WORKERS,
    DEFAULT_OWNER_CONTAINER_ID,
    DEFAULT_PROVISIONER_HOST,
    DEFAULT_PROVISIONER_PORT,
    DEFAULT_SCREEN_HEIGHT,
    DEFAULT_SCREEN_WIDTH,
    DEFAULT_TIME_ZONE,
    ENV_BUILD_URL,
    ENV_CHROME_CONTAINERS,
    ENV_FIREFOX_CONTAINERS,
    ENV_MAX_WORKERS,
    ENV_OWNER_CONTAINER_ID,
    ENV_SCREEN_HEIGHT,
    ENV_SCREEN_WIDTH,
    ENV_SEND_ANONYMOUS_USAGE_INFO,
    ENV_TIME_ZONE,
    ProvisionerCLIArgs,
    ProvisioningConfig,
    read_bool,
    read_int,
)
from .proxy import ProvisioningContext, StarterProxy
from .runtime import ContainerRuntimeError, DockerRuntime

LOGGER = logging.getLogger("Provisioner")


def parse_args(
    argv: Sequence[str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> ProvisionerCLIArgs:
    env = os.environ if environ is None else environ
    parser = argparse.ArgumentParser(
        description="Launch the on-demand browser worker provisioner."
    )
    parser.add_argument(
        "--chrome-worker-count",
        type=int,
        default=read_int(env, ENV_CHROME_CONTAINERS, DEFAULT_CHROME_CONTAINERS),
        help=f"Chrome workers to pre-warm on startup (env {ENV_CHROME_CONTAINERS}).",
    )
    parser.add_argument(
        "--firefox-worker-count",
        type=int,
        default=read_int(env, ENV_FIREFOX_CONTAINERS, DEFAULT_FIREFOX_CONTAINERS),
        help=f"Firefox workers to pre-warm on startup (env {ENV_FIREFOX_CONTAINERS}).",
    )
    parser.add_argument(
        "--max-workers",
        type=int,
        default=read_int(env, ENV_MAX_WORKERS, DEFAULT_MAX_WORKERS),
        help=f"Ceiling on concurrently running workers (env {ENV_MAX_WORKERS}).",
    )
    parser.add_argument(
        "--time-zone",
        default=env.get(ENV_TIME_ZONE, DEFAULT_TIME_ZONE),
        help=f"IANA time zone passed to workers (env {ENV_TIME_ZONE}).",
    )
    parser.add_argument(
        "--screen-width",
        type=int,
        default=read_int(env, ENV_SCREEN_WIDTH, DEFAULT_SCREEN_WIDTH),
        help=f"Virtual display width for workers (env {ENV_SCREEN_WIDTH}).",
    )
    parser.add_argument(
        "--screen-height",
        type=int,
        default=read_int(env, ENV_SCREEN_HEIGHT, DEFAULT_SCREEN_HEIGHT),
        help=f"Virtual display height for workers (env {ENV_SCREEN_HEIGHT}).",
    )
    parser.add_argument(
        "--owner-container-id",
        default=env.get(ENV_OWNER_CONTAINER_ID, DEFAULT_OWNER_CONTAINER_ID),
        help=(
            "Container whose network namespace workers join "
            f"(env {ENV_OWNER_CONTAINER_ID})."
        ),
    )
    parser.add_argument(
        "--capabilities-url",
        default=DEFAULT_CAPABILITIES_URL,
        help="URL of the worker image capability document.",
    )
    parser.add_argument(
        "--docker-url",
        default=DEFAULT_DOCKER_URL,
        help="Docker Engine API endpoint.",
    )
    parser.add_argument(
        "--host",
        default=DEFAULT_PROVISIONER_HOST,
        help="Host interface for the provisioner HTTP server.",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=DEFAULT_PROVISIONER_PORT,
        help="Port for the provisioner HTTP server.",
    )

    args = parser.parse_args(argv)
    provisioning = ProvisioningConfig.build(
        chrome_containers_on_startup=args.chrome_worker_count,
        firefox_containers_on_startup=args.firefox_worker_count,
        max_workers=args.max_workers,
        time_zone=args.time_zone,
        screen_width=args.screen_width,
        screen_height=args.screen_height,
        owner_container_id=args.owner_container_id,
        send_anonymous_usage_info=read_bool(env, ENV_SEND_ANONYMOUS_USAGE_INFO, False),
        build_url=env.get(ENV_BUILD_URL, ""),
    )
    return ProvisionerCLIArgs(
        provisioning=provisioning,
        capabilities_url=args.capabilities_url,
        docker_url=args.docker_url,
        host=args.host,
        port=args.port,
    )


def main(argv: Sequence[str] | None = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )
    args = parse_args(argv)

    try:
        runtime = DockerRuntime(base_url=args.docker_url)
    except ContainerRuntimeError as exc:
        LOGGER.error("%s", exc)
        return 1

    context = ProvisioningContext.create(
        args.provisioning, runtime, capabilities_url=args.capabilities_url
    )
    proxy = StarterProxy(context)
    LOGGER.info(
        "Advertising %s capabilities; max workers %s.",
        len(proxy.registration.capabilities),
        args.provisioning.max_workers,
    )

    app = create_app(proxy, context)
    config = uvicorn.Config(
        app,
        host=args.host,
        port=args.port,
        log_level="info",
    )
    server = uvicorn.Server(config)

    try:
        server.run()
    except KeyboardInterrupt:
        LOGGER.info("Shutdown requested by user.")

    LOGGER.info("Provisioner shutdown complete.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
