"""Main application entry point."""

import asyncio
import logging
import sys
from typing import Optional

import uvicorn

from .api.app import create_app
from .api.dependencies import set_config_instance, set_engine_instance
from .config import Config
from .monitoring.metrics import get_metrics
from .node.engine import NodeEngine
from .node.events import CommandDispatcher
from .sparkplug.errors import SparkplugError
from .sparkplug.known_metrics import KnownMetricSet
from .sparkplug.models import CommandEvent
from .transport import MockTransport, MqttTransport, TransportInterface
from .webhook import WebhookHandler

logger = logging.getLogger(__name__)


async def log_command(event: CommandEvent) -> None:
    """Default command subscriber: every inbound command is logged."""
    target = f"device {event.device_id}" if event.device_id else "node"
    logger.info(f"Command for {target}: {event.metric.name} = {event.metric.value!r}")


class Application:
    """
    Wires the transport, engine, command subscribers and API server
    together from one Config, and owns their shutdown order.
    """

    def __init__(self, config: Config):
        self.config = config
        self.transport: Optional[TransportInterface] = None
        self.engine: Optional[NodeEngine] = None
        self.dispatcher: Optional[CommandDispatcher] = None
        self.webhook_handler: Optional[WebhookHandler] = None
        self.api_server_task: Optional[asyncio.Task] = None
        self.running = False
        self._stopped = False

    # =========================================================================
    # Component construction
    # =========================================================================

    def _load_known_metrics(self) -> KnownMetricSet:
        """Validate the node identity and parse the metric declaration, or exit."""
        if not self.config.group_id or not self.config.edge_node_id:
            logger.error(
                "Group ID and edge node ID are required "
                "(SPARKPLUG_GROUP_ID, SPARKPLUG_EDGE_NODE_ID)"
            )
            sys.exit(1)

        try:
            return self.config.known_metric_set()
        except SparkplugError as e:
            logger.error(f"Invalid known metrics declaration: {e}")
            sys.exit(1)

    def _build_transport(self) -> TransportInterface:
        if self.config.use_mock:
            logger.info("Using mock transport, no broker will be contacted")
            return MockTransport()

        logger.info(f"Using MQTT transport to {self.config.broker_host}:{self.config.broker_port}")
        return MqttTransport(
            host=self.config.broker_host,
            port=self.config.broker_port,
            client_id=self.config.resolved_client_id,
            username=self.config.username,
            password=self.config.password,
            use_tls=self.config.use_tls,
            ca_certs=self.config.ca_certs,
            keepalive=self.config.keepalive,
            reconnect_interval=self.config.reconnect_interval,
        )

    def _build_dispatcher(self) -> CommandDispatcher:
        """Command subscribers: the log, plus webhooks when URLs are configured."""
        dispatcher = CommandDispatcher()
        dispatcher.subscribe_node_commands(log_command)
        dispatcher.subscribe_device_commands(log_command)

        if self.config.webhook_node_command or self.config.webhook_device_command:
            self.webhook_handler = WebhookHandler(
                node_command_url=self.config.webhook_node_command,
                device_command_url=self.config.webhook_device_command,
                node_command_jsonpath=self.config.webhook_node_command_jsonpath,
                device_command_jsonpath=self.config.webhook_device_command_jsonpath,
                timeout=self.config.webhook_timeout,
                retry_count=self.config.webhook_retry_count,
            )
            # One handler serves both scopes; it routes by event.scope
            dispatcher.subscribe_node_commands(self.webhook_handler.handle_command)
            dispatcher.subscribe_device_commands(self.webhook_handler.handle_command)
        return dispatcher

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Build every component, start the API server and connect the node."""
        logger.info(f"Starting Sparkplug edge node\n{self.config.display()}")
        known_metrics = self._load_known_metrics()

        if self.config.metrics_enabled:
            get_metrics().set_connection_status(False)

        self.transport = self._build_transport()
        self.dispatcher = self._build_dispatcher()
        self.engine = NodeEngine(
            transport=self.transport,
            group_id=self.config.group_id,
            edge_node_id=self.config.edge_node_id,
            known_metrics=known_metrics,
            dispatcher=self.dispatcher,
            namespace=self.config.namespace,
            embed_session_number=self.config.add_session_number_to_data_messages,
            republish_devices_on_reconnect=self.config.publish_known_device_metrics_on_reconnect,
            reserved_metric_names=self.config.reserved_metric_names,
            qos=self.config.qos,
            metrics_enabled=self.config.metrics_enabled,
        )

        set_engine_instance(self.engine)
        set_config_instance(self.config)

        # API first, so status is served while the broker connection comes up
        self.api_server_task = asyncio.create_task(self._run_api_server())

        if not await self.engine.start():
            logger.error("Transport refused to connect, exiting")
            sys.exit(1)

        self.running = True

    async def stop(self) -> None:
        """Send the graceful NDEATH, then stop the API server and webhooks. Idempotent."""
        if self._stopped:
            return
        self._stopped = True
        self.running = False
        logger.info("Stopping Sparkplug edge node")

        # NDEATH goes out before the API disappears
        if self.engine:
            await self.engine.stop()

        if self.api_server_task:
            self.api_server_task.cancel()
            try:
                await self.api_server_task
            except asyncio.CancelledError:
                pass

        if self.webhook_handler:
            await self.webhook_handler.close()

        logger.info("Application stopped")

    async def _run_api_server(self) -> None:
        logger.info(f"API server listening on {self.config.api_host}:{self.config.api_port}")
        try:
            app = create_app(
                title=self.config.api_title,
                enable_metrics=self.config.metrics_enabled,
                bearer_token=self.config.api_bearer_token,
            )
            server = uvicorn.Server(
                uvicorn.Config(
                    app,
                    host=self.config.api_host,
                    port=self.config.api_port,
                    log_config=None,
                )
            )
            await server.serve()
        except asyncio.CancelledError:
            logger.debug("API server cancelled")
            raise
        except Exception as e:
            logger.error(f"API server error: {e}", exc_info=True)
            if self.config.metrics_enabled:
                get_metrics().record_error("api_server", "server_failed")

    async def run(self) -> None:
        """Run until stop() is called (normally from a signal handler)."""
        try:
            await self.start()
            while self.running:
                await asyncio.sleep(1)
        except Exception as e:
            logger.error(f"Application error: {e}", exc_info=True)
        finally:
            await self.stop()


def main() -> None:
    """Main entry point - delegates to CLI."""
    from .cli import cli
    cli()


if __name__ == "__main__":
    main()
