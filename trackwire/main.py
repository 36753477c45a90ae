"""trackwire CLI: config validation, policy probe and an instrumented demo app."""

from __future__ import annotations

import asyncio
import json
import logging

import click
import uvicorn
from fastapi import FastAPI

from trackwire.config import TrackSettings, load_config
from trackwire.errors import ConfigurationError
from trackwire.logging import setup_logging
from trackwire.tracker import Tracker

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG = "config/trackwire.yaml"


def _load_or_exit(config_path: str) -> TrackSettings:
    try:
        return load_config(config_path)
    except ConfigurationError as exc:
        raise click.ClickException(str(exc)) from exc


def build_demo_app(tracker: Tracker, upstream_url: str) -> FastAPI:
    """A small FastAPI app exercising every capture path."""
    app = FastAPI(title="trackwire demo", lifespan=tracker.lifespan)
    tracker.instrument_app(app)
    tracker.instrument_logging()
    client = tracker.http_client(timeout=5.0)
    demo_logger = logging.getLogger("demo")

    @app.get("/hello")
    async def hello(name: str = "world") -> dict[str, str]:
        demo_logger.info("greeting %s", name)
        return {"message": f"hello {name}"}

    @app.get("/upstream")
    async def upstream() -> dict[str, object]:
        response = await client.get(upstream_url)
        demo_logger.info("upstream answered %s", response.status_code)
        return {"status": response.status_code}

    @app.get("/boom")
    async def boom() -> None:
        demo_logger.error("about to fail")
        raise RuntimeError("demo failure")

    return app


@click.group()
def cli() -> None:
    """trackwire — request, log and outbound-call tracking."""


@cli.command("validate")
@click.option("--config", "config_path", default=_DEFAULT_CONFIG, show_default=True)
def validate_command(config_path: str) -> None:
    """Load the config, validate the credential and print effective settings."""
    settings = _load_or_exit(config_path)
    click.echo(json.dumps(settings.redacted(), indent=2, sort_keys=True))


@cli.command("check-policy")
@click.argument("path")
@click.option("--config", "config_path", default=_DEFAULT_CONFIG, show_default=True)
def check_policy_command(path: str, config_path: str) -> None:
    """Ask the collector how the gate would treat PATH right now."""
    settings = _load_or_exit(config_path)

    async def _probe() -> dict[str, object]:
        tracker = Tracker(settings)
        try:
            decision = await tracker.gate.evaluate(path)
        finally:
            await tracker.collector.aclose()
        return decision.model_dump()

    click.echo(json.dumps(asyncio.run(_probe()), indent=2))


@cli.command("demo")
@click.option("--config", "config_path", default=_DEFAULT_CONFIG, show_default=True)
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.option("--upstream", default="https://httpbin.org/get", show_default=True)
def demo_command(config_path: str, host: str, port: int, upstream: str) -> None:
    """Serve an instrumented FastAPI demo app."""
    setup_logging()
    settings = _load_or_exit(config_path)
    app = build_demo_app(Tracker(settings), upstream)
    logger.info("Demo app tracking to %s (mode=%s)", settings.tracking_url, settings.mode)
    uvicorn.run(app, host=host, port=port, log_config=None)


if __name__ == "__main__":  # pragma: no cover
    cli()
