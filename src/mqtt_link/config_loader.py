"""
Configuration Loader.

Responsible for reading the config.yaml file and turning its `mqtt:`
section into ConnectionSettings.
"""
import yaml
import logging
from pathlib import Path
from typing import Dict, Any

from mqtt_link.client.exceptions import ConfigurationError
from mqtt_link.client.models import ConnectionSettings, SessionParams

logger = logging.getLogger(__name__)

def load_config(config_path: str = "config.yaml") -> Dict[str, Any]:
    """
    Loads the YAML configuration file.
    """
    path = Path(config_path)
    if not path.exists():
        logger.warning(f"Config file not found at {path}. Using defaults.")
        return {}

    try:
        with open(path, 'r') as f:
            config = yaml.safe_load(f) or {}
            logger.info(f"Loaded configuration from {path}")
            return config
    except Exception as e:
        logger.error(f"Failed to parse config file: {e}")
        raise

def _typed(conf: Dict[str, Any], key: str, kind: type, default: Any) -> Any:
    value = conf.get(key, default)
    if value is None:
        return default
    # bool is an int subclass, but `port: true` is a typo, not a port
    if kind in (int, float) and isinstance(value, bool):
        raise ConfigurationError(f"'{key}' must be a number, got {value!r}")
    if kind is float and isinstance(value, int):
        return float(value)
    if not isinstance(value, kind):
        raise ConfigurationError(f"'{key}' must be of type {kind.__name__}, got {value!r}")
    return value

def load_session(conf: Dict[str, Any]) -> SessionParams:
    will_message = conf.get('will_message')
    if isinstance(will_message, str):
        will_message = will_message.encode('utf-8')
    return SessionParams(
        client_id=_typed(conf, 'client_id', str, 'mqtt-link'),
        clean_session=_typed(conf, 'clean_session', bool, True),
        keep_alive=_typed(conf, 'keep_alive', int, 60),
        username=conf.get('username'),
        password=conf.get('password'),
        will_topic=conf.get('will_topic'),
        will_message=will_message,
        will_qos=_typed(conf, 'will_qos', int, 0),
        will_retain=_typed(conf, 'will_retain', bool, False),
    )

def load_settings(config: Dict[str, Any]) -> ConnectionSettings:
    """
    Maps the `mqtt:` section of a loaded config onto ConnectionSettings.
    Values are type-checked, never coerced.
    """
    mqtt_conf = config.get('mqtt') or {}
    host = _typed(mqtt_conf, 'host', str, 'localhost')
    port = _typed(mqtt_conf, 'port', int, 1883)
    if not host or port <= 0:
        raise ConfigurationError(f"Invalid broker endpoint {host!r}:{port!r}")

    return ConnectionSettings(
        host=host,
        port=port,
        use_tls=_typed(mqtt_conf, 'tls', bool, False),
        ca_file=mqtt_conf.get('ca_file'),
        cert_file=mqtt_conf.get('cert_file'),
        key_file=mqtt_conf.get('key_file'),
        handshake_timeout=_typed(mqtt_conf, 'handshake_timeout', float, 5.0),
        connect_timeout=_typed(mqtt_conf, 'connect_timeout', float, 5.0),
        poll_timeout=_typed(mqtt_conf, 'poll_timeout', float, 0.1),
        keep_alive_interval=_typed(mqtt_conf, 'keep_alive_interval', float, 1.0),
        persistent=_typed(mqtt_conf, 'persistent', bool, True),
        reconnect_delay=_typed(mqtt_conf, 'reconnect_delay', float, 5.0),
        session=load_session(mqtt_conf.get('session') or {}),
    )
