"""MQTT transport backed by paho-mqtt."""

import asyncio
import logging
import ssl
from typing import Optional

import paho.mqtt.client as mqtt

from .interface import LastWill, PublishResult, TransportInterface

logger = logging.getLogger(__name__)


class MqttTransport(TransportInterface):
    """
    paho-mqtt client running its network loop in a background thread.

    Callbacks fire on the paho thread and are handed to the asyncio loop
    that called connect(). Reconnects are paho's own, at the configured
    interval; every successful reconnect fires the connected callback again.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 1883,
        client_id: str = "sparkplug-node",
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = False,
        ca_certs: Optional[str] = None,
        keepalive: int = 60,
        reconnect_interval: float = 5.0,
    ):
        """
        Initialize MQTT transport.

        Args:
            host: Broker hostname
            port: Broker port
            client_id: MQTT client identifier
            username: Optional username
            password: Optional password
            use_tls: Enable TLS
            ca_certs: CA bundle path for TLS (system defaults if None)
            keepalive: Keepalive interval in seconds
            reconnect_interval: Delay between reconnect attempts in seconds
        """
        super().__init__()
        self.host = host
        self.port = port
        self.client_id = client_id
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.ca_certs = ca_certs
        self.keepalive = keepalive
        self.reconnect_interval = reconnect_interval

        self._client: Optional[mqtt.Client] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._connected = False
        self._will: Optional[LastWill] = None
        self._tasks: set[asyncio.Task] = set()

    def _build_client(self) -> mqtt.Client:
        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.client_id,
            protocol=mqtt.MQTTv311,
            clean_session=True,
        )
        client.on_connect = self._handle_connect
        client.on_disconnect = self._handle_disconnect
        client.on_message = self._handle_message

        if self.username:
            client.username_pw_set(self.username, self.password)

        if self.use_tls:
            client.tls_set(ca_certs=self.ca_certs, cert_reqs=ssl.CERT_REQUIRED)

        # paho takes whole seconds; fixed delay, no backoff
        interval = max(1, int(self.reconnect_interval))
        client.reconnect_delay_set(min_delay=interval, max_delay=interval)
        return client

    def _apply_will(self) -> None:
        if self._client is None or self._will is None:
            return
        self._client.will_set(
            self._will.topic,
            self._will.payload,
            qos=self._will.qos,
            retain=self._will.retain,
        )

    # =========================================================================
    # TransportInterface
    # =========================================================================

    async def connect(self, will: Optional[LastWill] = None) -> bool:
        """Start connecting; the connected callback fires once the broker accepts."""
        self._loop = asyncio.get_running_loop()
        if will is not None:
            self._will = will

        # Fresh client per connect so the will is applied before CONNECT
        self._client = self._build_client()
        self._apply_will()

        logger.info(f"Connecting to MQTT broker at {self.host}:{self.port}")
        try:
            self._client.connect_async(self.host, self.port, keepalive=self.keepalive)
            self._client.loop_start()
        except (OSError, ValueError) as e:
            logger.error(f"Failed to start MQTT connection: {e}")
            return False

        return True

    async def disconnect(self) -> None:
        """
        Disconnect and stop the network loop, cancelling pending reconnects
        and any callback handlers still running.
        """
        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()

        if self._client is None:
            return

        logger.info("Disconnecting from MQTT broker")
        try:
            self._client.disconnect()
            self._client.loop_stop()
        except Exception as e:
            logger.warning(f"Error while disconnecting from MQTT broker: {e}")
        self._connected = False

    async def is_connected(self) -> bool:
        return self._connected

    async def publish(
        self, topic: str, payload: bytes, qos: int = 0, retain: bool = False
    ) -> PublishResult:
        if self._client is None or not self._connected:
            return PublishResult.failed("Not connected")

        try:
            info = self._client.publish(topic, payload, qos=qos, retain=retain)
        except (OSError, ValueError) as e:
            return PublishResult.failed(str(e))

        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            return PublishResult.failed(mqtt.error_string(info.rc))
        return PublishResult.ok()

    async def subscribe(self, topic_filter: str, qos: int = 0) -> PublishResult:
        if self._client is None or not self._connected:
            return PublishResult.failed("Not connected")

        result, _mid = self._client.subscribe(topic_filter, qos=qos)
        if result != mqtt.MQTT_ERR_SUCCESS:
            return PublishResult.failed(mqtt.error_string(result))
        logger.info(f"Subscribed to {topic_filter}")
        return PublishResult.ok()

    async def set_last_will(self, will: LastWill) -> None:
        """
        Replace the last will.

        paho applies a will at connect time, so the new will takes effect on
        the next (re)connect.
        """
        self._will = will
        self._apply_will()

    # =========================================================================
    # paho callbacks (network thread)
    # =========================================================================

    def _schedule(self, handler, *args) -> None:
        """Hand a callback to the asyncio loop from the paho thread."""
        if handler is None or self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._start_task, handler, args)

    def _start_task(self, handler, args) -> None:
        # Runs on the loop thread; the set keeps tasks alive until they finish
        task = asyncio.ensure_future(handler(*args))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"MQTT callback handler failed: {exc}", exc_info=exc)

    def _handle_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            self._connected = False
            logger.error(f"MQTT connection refused: {reason_code}")
            return

        self._connected = True
        logger.info("Connected to MQTT broker")
        self._schedule(self._on_connected)

    def _handle_disconnect(self, client, userdata, flags, reason_code, properties=None):
        was_connected = self._connected
        self._connected = False
        logger.warning(f"Disconnected from MQTT broker: {reason_code}")
        # A failed connect attempt ends no session
        if was_connected:
            self._schedule(self._on_disconnected)

    def _handle_message(self, client, userdata, message):
        self._schedule(self._on_message, message.topic, bytes(message.payload))
