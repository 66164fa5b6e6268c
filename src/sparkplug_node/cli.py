"""Command-line interface for the Sparkplug edge node."""

import asyncio
import logging
import signal
import sys

import click

from .config import Config
from .sparkplug.models import MessageType
from .sparkplug.topics import build_topic, command_subscriptions
from .utils.logging import setup_logging

logger = logging.getLogger(__name__)


@click.group()
def cli():
    """Sparkplug edge node - Sparkplug B session/sequence engine with a REST API."""
    pass


@cli.command()
@click.option(
    "--broker-host",
    type=str,
    help="MQTT broker host (default: localhost)",
)
@click.option(
    "--broker-port",
    type=int,
    help="MQTT broker port (default: 1883)",
)
@click.option(
    "--client-id",
    type=str,
    help="MQTT client id (default: <group>-<edge node>)",
)
@click.option(
    "--username",
    type=str,
    help="MQTT username",
)
@click.option(
    "--password",
    type=str,
    help="MQTT password",
)
@click.option(
    "--use-tls",
    is_flag=True,
    default=None,
    help="Connect to the broker over TLS",
)
@click.option(
    "--ca-certs",
    type=click.Path(),
    help="CA bundle for TLS (default: system trust store)",
)
@click.option(
    "--keepalive",
    type=int,
    help="MQTT keepalive in seconds (default: 60)",
)
@click.option(
    "--reconnect-interval",
    type=float,
    help="Seconds between reconnect attempts (default: 30)",
)
@click.option(
    "--qos",
    type=click.IntRange(0, 1),
    help="MQTT QoS for publishes and command subscriptions (default: 0)",
)
@click.option(
    "--use-mock",
    is_flag=True,
    default=None,
    help="Use the in-memory mock transport instead of a broker",
)
@click.option(
    "--namespace",
    type=str,
    help="Topic namespace (default: spBv1.0)",
)
@click.option(
    "--group-id",
    type=str,
    help="Sparkplug group id (required)",
)
@click.option(
    "--edge-node-id",
    type=str,
    help="Sparkplug edge node id (required)",
)
@click.option(
    "--known-metrics",
    type=str,
    help="Comma-separated name:datatype list, e.g. 'Temperature:double,Running:boolean'",
)
@click.option(
    "--reserved-metric-names",
    type=str,
    help="Comma-separated metric names callers may never supply (default: bdSeq)",
)
@click.option(
    "--no-session-number",
    is_flag=True,
    default=None,
    help="Do not embed the session number in data messages",
)
@click.option(
    "--no-device-republish",
    is_flag=True,
    default=None,
    help="Do not republish known devices on reconnect",
)
@click.option(
    "--api-host",
    type=str,
    help="API server host (default: 0.0.0.0)",
)
@click.option(
    "--api-port",
    type=int,
    help="API server port (default: 8000)",
)
@click.option(
    "--api-bearer-token",
    type=str,
    help="Bearer token for API authentication (if set, all endpoints except /docs, /redoc require authentication)",
)
@click.option(
    "--no-metrics",
    is_flag=True,
    default=None,
    help="Disable Prometheus metrics",
)
@click.option(
    "--no-write",
    is_flag=True,
    default=None,
    help="Disable publish endpoints (read-only API)",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level (default: INFO)",
)
@click.option(
    "--log-format",
    type=click.Choice(["text", "json"], case_sensitive=False),
    help="Log format (default: json)",
)
@click.option(
    "--webhook-node-command",
    type=str,
    help="Webhook URL for node commands (NCMD)",
)
@click.option(
    "--webhook-device-command",
    type=str,
    help="Webhook URL for device commands (DCMD)",
)
@click.option(
    "--webhook-node-command-jsonpath",
    type=str,
    help="JSONPath applied to node command webhook payloads (default: $)",
)
@click.option(
    "--webhook-device-command-jsonpath",
    type=str,
    help="JSONPath applied to device command webhook payloads (default: $)",
)
@click.option(
    "--webhook-timeout",
    type=int,
    help="Webhook HTTP request timeout in seconds (default: 5)",
)
@click.option(
    "--webhook-retry-count",
    type=int,
    help="Number of webhook retry attempts on failure (default: 3)",
)
def server(**kwargs):
    """Start the edge node and its API server."""
    from .__main__ import Application

    # Filter out None values (unspecified options)
    cli_args = {k: v for k, v in kwargs.items() if v is not None}

    try:
        config = Config.from_args_and_env(cli_args)
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    # Configure logging before anything else logs
    setup_logging(
        level=config.log_level,
        format_type=config.log_format,
        group_id=config.group_id,
        edge_node_id=config.edge_node_id,
    )

    app = Application(config)

    # Dedicated loop; signals schedule a graceful stop on it
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def signal_handler(sig, frame):
        logger.info(f"Received signal {sig}")
        loop.create_task(app.stop())

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        loop.run_until_complete(app.run())
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt")
    finally:
        loop.close()


@cli.command()
@click.option(
    "--namespace",
    type=str,
    help="Topic namespace (default: spBv1.0)",
)
@click.option(
    "--group-id",
    type=str,
    help="Sparkplug group id",
)
@click.option(
    "--edge-node-id",
    type=str,
    help="Sparkplug edge node id",
)
@click.option(
    "--device",
    "devices",
    multiple=True,
    help="Device id to include (repeatable)",
)
def topics(devices, **kwargs):
    """Print the topics this node publishes and subscribes to."""
    cli_args = {k: v for k, v in kwargs.items() if v is not None}
    config = Config.from_args_and_env(cli_args)

    if not config.group_id or not config.edge_node_id:
        click.echo("Error: --group-id and --edge-node-id are required", err=True)
        sys.exit(1)

    def topic(message_type: MessageType, device_id=None) -> str:
        return build_topic(
            config.group_id, message_type, config.edge_node_id, device_id, config.namespace
        )

    # Outbound topics
    click.echo("Publishes:")
    for message_type in (MessageType.NODE_BIRTH, MessageType.NODE_DATA, MessageType.NODE_DEATH):
        click.echo(f"  {message_type.value:<7} {topic(message_type)}")
    for device_id in devices:
        for message_type in (
            MessageType.DEVICE_BIRTH,
            MessageType.DEVICE_DATA,
            MessageType.DEVICE_DEATH,
        ):
            click.echo(f"  {message_type.value:<7} {topic(message_type, device_id)}")

    # Command subscriptions
    click.echo("Subscribes:")
    for topic_filter in command_subscriptions(
        config.group_id, config.edge_node_id, config.namespace
    ):
        click.echo(f"  {topic_filter}")


if __name__ == "__main__":
    cli()
