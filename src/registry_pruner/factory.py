"""Component factory."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Self

import httpx
import structlog
from structlog.stdlib import BoundLogger

from .config import PrunerConfig
from .services.pruner import PruneEngine, Pruner
from .storage.registry import RegistryClient


def configure_logging(debug: bool) -> None:
    log_level = logging.DEBUG if debug else logging.INFO
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(log_level)
    )


class Factory:
    """Build pruner components.

    All components built by one factory share a single registry client,
    and so a single authentication session.

    Parameters
    ----------
    config
        Pruner configuration.
    logger
        Logger to use for messages.
    http_client
        HTTP client to use; if not given, the registry client makes its own.
    """

    @classmethod
    @contextmanager
    def standalone(
        cls, config: PrunerConfig, http_client: httpx.Client | None = None
    ) -> Iterator[Self]:
        """Context manager for pruner components.

        Parameters
        ----------
        config
            Pruner configuration.
        http_client
            HTTP client to use, mostly for the test suite.

        Yields
        ------
        Factory
            Newly-created factory, closed on exit.
        """
        configure_logging(config.debug)
        logger = structlog.get_logger("registry_pruner")
        factory = cls(config, logger, http_client=http_client)
        try:
            yield factory
        finally:
            factory.close()

    def __init__(
        self,
        config: PrunerConfig,
        logger: BoundLogger,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._config = config
        self._logger = logger
        self._client = RegistryClient(
            config, http_client=http_client, logger=logger
        )

    def close(self) -> None:
        self._client.close()

    def create_prune_engine(self) -> PruneEngine:
        return PruneEngine(self._config, self._client, logger=self._logger)

    def create_pruner(self) -> Pruner:
        return Pruner(
            self._client, self.create_prune_engine(), logger=self._logger
        )
