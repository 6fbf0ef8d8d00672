"""
Infrastructure initialization and teardown.

One InfraBootstrap per application: created at startup, shut down on exit.
There is no process-wide instance; whoever composes the application owns it.
"""

import logging
from typing import Optional

from router import ConnectionState, InferenceClient
from router.connection import Connector

from .config import InfraConfig, get_config

logger = logging.getLogger(__name__)


class InfraBootstrap:
    """
    Owns the inference client and its connection lifecycle.

    Usage:
        infra = InfraBootstrap(InfraConfig.from_env())
        await infra.start()
        ...
        await infra.shutdown()

    or ``async with InfraBootstrap() as infra: ...``
    """

    def __init__(self, config: Optional[InfraConfig] = None, connector: Optional[Connector] = None):
        """Initialize bootstrap with configuration."""
        self.config = config or get_config()
        self.client = self.config.create_client(connector)
        self._started = False

    async def start(self) -> InferenceClient:
        """
        Connect the client.

        Raises:
            ConnectError: the ML server could not be reached.
        """
        if not self._started:
            logger.info("Connecting inference client to %s", self.config.ml_server_url)
            await self.client.start()
            self._started = True
        return self.client

    async def shutdown(self) -> None:
        """Disconnect the client. Safe to call more than once."""
        if self._started:
            logger.info("Shutting down inference client")
        await self.client.close()
        self._started = False

    def get_client(self) -> InferenceClient:
        """Get inference client."""
        return self.client

    @property
    def is_running(self) -> bool:
        return self._started and self.client.state is ConnectionState.CONNECTED

    async def __aenter__(self) -> "InfraBootstrap":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    def __repr__(self) -> str:
        """String representation showing configured components."""
        return (
            f"InfraBootstrap(url={self.config.ml_server_url}, "
            f"backend={self.config.model_backend}, "
            f"state={self.client.state.value})"
        )


def bootstrap_infrastructure(
    config: Optional[InfraConfig] = None,
    connector: Optional[Connector] = None,
) -> InfraBootstrap:
    """
    Build a new, not yet started, infrastructure owner.

    Args:
        config: Optional custom configuration
        connector: Optional socket connector (tests inject in-memory fakes)
    """
    return InfraBootstrap(config, connector)
