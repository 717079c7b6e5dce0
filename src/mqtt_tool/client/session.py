"""
Broker Session Management.

This module is responsible for:
- Running the persistent connection loop on top of `aiomqtt`, with the
  reconnect delay governed by a `ReconnectController`.
- Re-issuing active subscriptions after every reconnect.
- Firing the one-time ready signal on the first successful connection.
- Delivering incoming messages, in order, to exactly one registered handler.
- Publishing on behalf of the commands.
"""
import asyncio
import logging
import ssl
from typing import Awaitable, Callable, Dict, Optional, Union

from aiomqtt import Client as MQTTClient, MqttError
from paho.mqtt.subscribeoptions import SubscribeOptions

from mqtt_tool.client.models import ConnectionConfig, Delivery
from mqtt_tool.client.reconnect import ReconnectController

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Delivery], Awaitable[None]]
Payload = Union[bytes, str, None]


class MessageSubscription:
    """Handle for the single registered message handler."""

    def __init__(self, session: "Session", handler: MessageHandler):
        self._session = session
        self.handler = handler

    @property
    def active(self) -> bool:
        return self._session._handler is self

    def cancel(self):
        if self.active:
            self._session._handler = None


class Session:
    config: ConnectionConfig
    reconnect: ReconnectController
    _main_task: Optional[asyncio.Task]
    _client: Optional[MQTTClient]
    _handler: Optional[MessageSubscription]
    _subscriptions: Dict[str, bool]

    """
    The single connected handle all commands operate through.
    """
    def __init__(self, config: ConnectionConfig, reconnect: ReconnectController):
        self.config = config
        self.reconnect = reconnect
        self._main_task = None
        self._client = None
        self._handler = None
        # topic filter -> retain-as-published requested
        self._subscriptions = {}
        self._ready = asyncio.Event()
        self._connected = asyncio.Event()
        self._tls_context = self._build_tls_context() if config.use_tls else None

    def _build_tls_context(self) -> ssl.SSLContext:
        # brokers in the field use self-signed certificates
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        if self.config.has_client_cert:
            try:
                context.load_cert_chain(certfile=self.config.certfile, keyfile=self.config.keyfile)
            except (ssl.SSLError, OSError) as e:
                logger.warning(f"Client certificate {self.config.certfile} not usable ({e}), connecting without it.")
        return context

    def _make_client(self) -> MQTTClient:
        kwargs = {
            "hostname": self.config.hostname,
            "port": self.config.port,
            "username": self.config.username,
            "password": self.config.password,
            "identifier": self.config.client_id,
            "protocol": self.config.protocol,
            "transport": self.config.transport,
        }
        if self.config.websocket_path:
            kwargs["websocket_path"] = self.config.websocket_path
        if self._tls_context is not None:
            kwargs["tls_context"] = self._tls_context
        return MQTTClient(**kwargs)

    @property
    def ready(self) -> bool:
        return self._ready.is_set()

    @property
    def connected(self) -> bool:
        return self._connected.is_set()

    async def start(self):
        """
        Launches the connection loop in the background.
        """
        logger.info(f"Starting session, connecting to {self.config.url} ({self.config.mode.value})...")
        self._main_task = asyncio.create_task(self.run())

    async def stop(self):
        """
        Cancels the connection loop, which closes the connection.
        """
        if self._main_task:
            logger.info("Stopping session...")
            self._main_task.cancel()
            try:
                await self._main_task
            except asyncio.CancelledError:
                logger.info("Session stopped.")
            self._main_task = None

    async def wait_ready(self):
        await self._ready.wait()

    async def join(self):
        """Waits until the connection loop ends (it only ends when stopped or on a bug)."""
        if self._main_task:
            # cancelling a waiting command must not tear down the connection
            await asyncio.shield(self._main_task)

    async def run(self):
        """
        The persistent connection loop. Never gives up; every failure or
        drop is followed by the backoff delay read before that attempt.
        """
        while True:
            wait_ms = self.reconnect.pre_connect()
            try:
                async with self._make_client() as client:
                    self._on_connected(client)
                    for topic_filter, retain_as_published in list(self._subscriptions.items()):
                        await self._subscribe(client, topic_filter, retain_as_published)
                    await self._dispatch_loop(client)
            except MqttError as e:
                logger.warning(f"MQTT connection lost: {e}")
                self.reconnect.on_close()
            finally:
                self._on_disconnected()
            await asyncio.sleep(wait_ms / 1000)

    def _on_connected(self, client: MQTTClient):
        self.reconnect.on_connect()
        self._client = client
        self._connected.set()
        if not self._ready.is_set():
            logger.info(f"Connected to mqtt broker at {self.config.url}")
            self._ready.set()
        else:
            logger.info("Reconnected to mqtt broker")

    def _on_disconnected(self):
        self._client = None
        self._connected.clear()

    async def _dispatch_loop(self, client: MQTTClient):
        async for message in client.messages:
            delivery = Delivery(
                topic=message.topic.value,
                payload=message.payload if isinstance(message.payload, bytes) else str(message.payload or "").encode(),
                retain=bool(message.retain),
                qos=int(message.qos),
                message_id=message.mid or None,
                properties=message.properties.json() if message.properties is not None else {},
            )
            if self._handler is None:
                logger.debug(f"No handler registered, dropping message on {delivery.topic}")
                continue
            await self._handler.handler(delivery)

    def on_message(self, handler: MessageHandler) -> MessageSubscription:
        """Registers the one handler receiving every delivery."""
        if self._handler is not None:
            raise RuntimeError("A message handler is already registered on this session")
        self._handler = MessageSubscription(self, handler)
        return self._handler

    async def _connected_client(self) -> MQTTClient:
        while True:
            await self._connected.wait()
            if self._client is not None:
                return self._client

    async def _subscribe(self, client: MQTTClient, topic_filter: str, retain_as_published: bool):
        try:
            if retain_as_published and self.config.supports_retain_as_published:
                await client.subscribe(topic_filter, options=SubscribeOptions(qos=0, retainAsPublished=True))
            else:
                await client.subscribe(topic_filter)
            logger.info(f"Subscribed to {topic_filter}")
        except MqttError as e:
            logger.warning(f"Subscribe to {topic_filter} failed, will retry on reconnect: {e}")

    async def subscribe(self, topic_filter: str, retain_as_published: bool = False):
        """
        Subscribes to `topic_filter`, now if connected and again after
        every reconnect.
        """
        self._subscriptions[topic_filter] = retain_as_published
        if self._client is not None:
            await self._subscribe(self._client, topic_filter, retain_as_published)

    async def publish(self, topic: str, payload: Payload, retain: bool = False):
        """
        Publishes `payload` on `topic`. A `None` payload with `retain=True`
        clears the retained message. Waits for a connection; transport
        errors are logged, not raised.
        """
        client = await self._connected_client()
        try:
            await client.publish(topic, payload=payload, retain=retain)
            logger.debug(f"Published to '{topic}' (retain={retain})")
        except MqttError as e:
            logger.warning(f"Publish to '{topic}' failed: {e}")
