"""Configuration for the edge node server command."""

from dataclasses import dataclass, field
from typing import Optional

from ..sparkplug.constants import DEFAULT_RESERVED_METRIC_NAMES, NAMESPACE
from ..sparkplug.known_metrics import KnownMetricSet
from .base import EnvVars, get_bool_config_value, get_config_value, split_list


@dataclass
class Config:
    """Application configuration.

    Configuration can be set via:
    1. CLI arguments (highest priority)
    2. Environment variables (SPARKPLUG_* prefix)
    3. Default values (lowest priority)
    """

    # === Broker ===
    broker_host: str = "localhost"
    broker_port: int = 1883
    client_id: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    use_tls: bool = False
    ca_certs: Optional[str] = None
    keepalive: int = 60
    reconnect_interval: float = 30.0
    qos: int = 0
    use_mock: bool = False

    # === Node identity ===
    namespace: str = NAMESPACE
    group_id: Optional[str] = None
    edge_node_id: Optional[str] = None

    # === Session policy ===
    add_session_number_to_data_messages: bool = True
    publish_known_device_metrics_on_reconnect: bool = True
    known_metrics: str = ""
    reserved_metric_names: tuple = field(default=DEFAULT_RESERVED_METRIC_NAMES)

    # === API ===
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "Sparkplug Edge Node"
    api_bearer_token: Optional[str] = None

    # === Prometheus ===
    metrics_enabled: bool = True

    # === Write Operations ===
    enable_write: bool = True

    # === Logging ===
    log_level: str = "INFO"
    log_format: str = "json"  # json|text

    # === Webhooks ===
    webhook_node_command: Optional[str] = None
    webhook_device_command: Optional[str] = None
    webhook_node_command_jsonpath: str = "$"
    webhook_device_command_jsonpath: str = "$"
    webhook_timeout: int = 5
    webhook_retry_count: int = 3

    @property
    def resolved_client_id(self) -> str:
        """MQTT client id, derived from the node identity when not set."""
        if self.client_id:
            return self.client_id
        return f"{self.group_id or 'group'}-{self.edge_node_id or 'node'}"

    def known_metric_set(self) -> KnownMetricSet:
        """
        Parse the known metrics declaration.

        Raises:
            InvalidMetricType: If a declared datatype is unknown
        """
        return KnownMetricSet.parse(self.known_metrics)

    @classmethod
    def from_args_and_env(cls, cli_args: Optional[dict] = None) -> "Config":
        """
        Load configuration from CLI arguments, environment variables, and defaults.

        Priority: CLI args > Environment variables > Defaults

        Args:
            cli_args: Optional dictionary of CLI arguments

        Returns:
            Config instance
        """
        if cli_args is None:
            cli_args = {}

        config = cls()

        # === Broker ===
        config.broker_host = get_config_value(
            cli_args.get("broker_host"), EnvVars.BROKER_HOST, config.broker_host
        )
        config.broker_port = get_config_value(
            cli_args.get("broker_port"), EnvVars.BROKER_PORT, config.broker_port, int
        )
        config.client_id = get_config_value(
            cli_args.get("client_id"), EnvVars.CLIENT_ID, config.client_id
        )
        config.username = get_config_value(
            cli_args.get("username"), EnvVars.USERNAME, config.username
        )
        config.password = get_config_value(
            cli_args.get("password"), EnvVars.PASSWORD, config.password
        )
        config.use_tls = get_bool_config_value(
            cli_args.get("use_tls", False), EnvVars.USE_TLS, config.use_tls
        )
        config.ca_certs = get_config_value(
            cli_args.get("ca_certs"), EnvVars.CA_CERTS, config.ca_certs
        )
        config.keepalive = get_config_value(
            cli_args.get("keepalive"), EnvVars.KEEPALIVE, config.keepalive, int
        )
        config.reconnect_interval = get_config_value(
            cli_args.get("reconnect_interval"),
            EnvVars.RECONNECT_INTERVAL,
            config.reconnect_interval,
            float,
        )
        config.qos = get_config_value(cli_args.get("qos"), EnvVars.QOS, config.qos, int)
        config.use_mock = get_bool_config_value(
            cli_args.get("use_mock", False), EnvVars.USE_MOCK, config.use_mock
        )

        # === Node identity ===
        config.namespace = get_config_value(
            cli_args.get("namespace"), EnvVars.NAMESPACE, config.namespace
        )
        config.group_id = get_config_value(
            cli_args.get("group_id"), EnvVars.GROUP_ID, config.group_id
        )
        config.edge_node_id = get_config_value(
            cli_args.get("edge_node_id"), EnvVars.EDGE_NODE_ID, config.edge_node_id
        )

        # === Session policy ===
        config.add_session_number_to_data_messages = get_bool_config_value(
            cli_args.get("no_session_number", False),
            EnvVars.ADD_SESSION_NUMBER_TO_DATA,
            config.add_session_number_to_data_messages,
            invert_cli=True,
        )
        config.publish_known_device_metrics_on_reconnect = get_bool_config_value(
            cli_args.get("no_device_republish", False),
            EnvVars.REPUBLISH_DEVICES_ON_RECONNECT,
            config.publish_known_device_metrics_on_reconnect,
            invert_cli=True,
        )
        config.known_metrics = get_config_value(
            cli_args.get("known_metrics"), EnvVars.KNOWN_METRICS, config.known_metrics
        )
        reserved = get_config_value(
            cli_args.get("reserved_metric_names"), EnvVars.RESERVED_METRIC_NAMES, None
        )
        if reserved is not None:
            config.reserved_metric_names = split_list(reserved)

        # === API ===
        config.api_host = get_config_value(
            cli_args.get("api_host"), EnvVars.API_HOST, config.api_host
        )
        config.api_port = get_config_value(
            cli_args.get("api_port"), EnvVars.API_PORT, config.api_port, int
        )
        config.api_bearer_token = get_config_value(
            cli_args.get("api_bearer_token"), EnvVars.API_BEARER_TOKEN, config.api_bearer_token
        )

        config.metrics_enabled = get_bool_config_value(
            cli_args.get("no_metrics", False),
            EnvVars.METRICS_ENABLED,
            config.metrics_enabled,
            invert_cli=True,
        )
        config.enable_write = get_bool_config_value(
            cli_args.get("no_write", False),
            EnvVars.ENABLE_WRITE,
            config.enable_write,
            invert_cli=True,
        )

        # === Logging ===
        config.log_level = get_config_value(
            cli_args.get("log_level"), EnvVars.LOG_LEVEL, config.log_level
        )
        config.log_format = get_config_value(
            cli_args.get("log_format"), EnvVars.LOG_FORMAT, config.log_format
        )

        # === Webhooks ===
        config.webhook_node_command = get_config_value(
            cli_args.get("webhook_node_command"),
            EnvVars.WEBHOOK_NODE_COMMAND,
            config.webhook_node_command,
        )
        config.webhook_device_command = get_config_value(
            cli_args.get("webhook_device_command"),
            EnvVars.WEBHOOK_DEVICE_COMMAND,
            config.webhook_device_command,
        )
        config.webhook_node_command_jsonpath = get_config_value(
            cli_args.get("webhook_node_command_jsonpath"),
            EnvVars.WEBHOOK_NODE_COMMAND_JSONPATH,
            config.webhook_node_command_jsonpath,
        )
        config.webhook_device_command_jsonpath = get_config_value(
            cli_args.get("webhook_device_command_jsonpath"),
            EnvVars.WEBHOOK_DEVICE_COMMAND_JSONPATH,
            config.webhook_device_command_jsonpath,
        )
        config.webhook_timeout = get_config_value(
            cli_args.get("webhook_timeout"), EnvVars.WEBHOOK_TIMEOUT, config.webhook_timeout, int
        )
        config.webhook_retry_count = get_config_value(
            cli_args.get("webhook_retry_count"),
            EnvVars.WEBHOOK_RETRY_COUNT,
            config.webhook_retry_count,
            int,
        )

        return config

    def display(self) -> str:
        """
        Display configuration in human-readable format.

        Returns:
            Formatted configuration string
        """
        lines = [
            "Configuration:",
            "  Broker:",
            f"    Mode: {'Mock' if self.use_mock else 'MQTT'}",
        ]

        if not self.use_mock:
            lines.extend([
                f"    Address: {self.broker_host}:{self.broker_port}",
                f"    Client ID: {self.resolved_client_id}",
                f"    Authentication: {'Enabled' if self.username else 'Disabled'}",
                f"    TLS: {'Enabled' if self.use_tls else 'Disabled'}",
                f"    Keepalive: {self.keepalive}s",
                f"    Reconnect Interval: {self.reconnect_interval}s",
            ])

        lines.extend([
            "  Node:",
            f"    Namespace: {self.namespace}",
            f"    Group ID: {self.group_id or '(not set)'}",
            f"    Edge Node ID: {self.edge_node_id or '(not set)'}",
            f"    Known Metrics: {self.known_metrics or '(none)'}",
            f"    Reserved Names: {', '.join(self.reserved_metric_names)}",
            f"    Session Number In Data: {'Enabled' if self.add_session_number_to_data_messages else 'Disabled'}",
            f"    Republish Devices On Reconnect: {'Enabled' if self.publish_known_device_metrics_on_reconnect else 'Disabled'}",
            "  API:",
            f"    Host: {self.api_host}",
            f"    Port: {self.api_port}",
            f"    Authentication: {'Enabled (Bearer token required)' if self.api_bearer_token else 'Disabled (Public API)'}",
            f"    Metrics: {'Enabled' if self.metrics_enabled else 'Disabled'}",
            f"    Write Operations: {'Enabled' if self.enable_write else 'Disabled (Read-only mode)'}",
            "  Logging:",
            f"    Level: {self.log_level}",
            f"    Format: {self.log_format}",
        ])

        if any([self.webhook_node_command, self.webhook_device_command]):
            lines.append("  Webhooks:")
            if self.webhook_node_command:
                lines.append(f"    Node Commands: {self.webhook_node_command}")
                lines.append(f"      JSONPath: {self.webhook_node_command_jsonpath}")
            if self.webhook_device_command:
                lines.append(f"    Device Commands: {self.webhook_device_command}")
                lines.append(f"      JSONPath: {self.webhook_device_command_jsonpath}")
            lines.extend([
                f"    Timeout: {self.webhook_timeout}s",
                f"    Retry Count: {self.webhook_retry_count}",
            ])

        return "\n".join(lines)
