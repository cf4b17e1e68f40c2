# -*- coding: utf-8 -*-
# ------------------------------------------------------------------------------
#
#   Copyright 2024-2025 Valory AG
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.
#
# ------------------------------------------------------------------------------

"""Bootstraps and tears down the test environment."""

import logging
import shutil
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import Any, Optional, Type

from packages.nodeset.harness.beacon_mock import BeaconMockManager
from packages.nodeset.harness.config import HarnessConfig
from packages.nodeset.harness.coordinator import (
    ExecutionAdminInterface,
    SnapshotCoordinator,
)
from packages.nodeset.harness.exceptions import (
    ClosedError,
    HarnessError,
    InitializationError,
)
from packages.nodeset.harness.execution import ExecutionAdmin


_logger = logging.getLogger(__name__)


@dataclass
class ServiceProvider:
    """The backend handles and settings a test works against."""

    config: HarnessConfig
    testing_config_dir: Path
    execution_admin: ExecutionAdminInterface
    beacon_manager: BeaconMockManager


class HarnessManager:
    """Owns the test environment: temp dir, backends and the snapshot coordinator."""

    def __init__(
        self,
        service_provider: ServiceProvider,
        coordinator: SnapshotCoordinator,
    ) -> None:
        """Initialize from already bootstrapped parts. Use create() instead."""
        self.service_provider = service_provider
        self.coordinator = coordinator
        self._testing_config_dir: Optional[Path] = service_provider.testing_config_dir

    @classmethod
    def create(
        cls,
        config: Optional[HarnessConfig] = None,
        execution_admin: Optional[ExecutionAdminInterface] = None,
        beacon_manager: Optional[BeaconMockManager] = None,
    ) -> "HarnessManager":
        """
        Bootstrap a harness and take its baseline snapshot.

        :param config: the harness config, read from the environment if omitted.
        :param execution_admin: an execution-layer admin handle to use instead of dialing the node.
        :param beacon_manager: a beacon mock to use instead of a fresh one.
        :return: the ready harness.
        """
        config = config if config is not None else HarnessConfig.from_env()

        try:
            testing_config_dir = Path(tempfile.mkdtemp(prefix=config.temp_dir_prefix))
        except OSError as e:
            raise InitializationError(f"error creating temp config dir: {e}") from e
        _logger.info("Created temp config dir %s", testing_config_dir)

        if execution_admin is None:
            execution_admin = ExecutionAdmin.from_url(
                config.hardhat_url, timeout=config.client_timeout
            )
        if beacon_manager is None:
            beacon_manager = BeaconMockManager(config.beacon_config)

        service_provider = ServiceProvider(
            config=config,
            testing_config_dir=testing_config_dir,
            execution_admin=execution_admin,
            beacon_manager=beacon_manager,
        )

        try:
            coordinator = SnapshotCoordinator(execution_admin, beacon_manager)
            coordinator.establish_baseline()
        except HarnessError as e:
            _remove_dir(testing_config_dir)
            raise InitializationError(
                f"error creating baseline snapshot: {e}", backend=e.backend
            ) from e

        return cls(service_provider, coordinator)

    @property
    def testing_config_dir(self) -> Optional[Path]:
        """Get the temp config dir, or None once cleaned up."""
        return self._testing_config_dir

    @property
    def baseline_id(self) -> Optional[str]:
        """Get the current baseline snapshot token."""
        return self.coordinator.baseline_id

    def revert_to_baseline(self) -> None:
        """Revert the EC and BN to the baseline snapshot."""
        self.coordinator.revert_to_baseline()

    def create_custom_snapshot(self) -> str:
        """Take a snapshot of the EC and BN states."""
        return self.coordinator.create_custom_snapshot()

    def revert_to_custom_snapshot(self, snapshot_id: str) -> None:
        """Revert the EC and BN to a custom snapshot."""
        self.coordinator.revert_to_custom_snapshot(snapshot_id)

    def cleanup(self) -> None:
        """Revert to the baseline and remove the temp config dir. Safe to call twice."""
        if not self.coordinator.closed:
            try:
                self.coordinator.revert_to_baseline()
            except HarnessError as e:
                _logger.error("Error reverting to baseline during cleanup: %s", e)
            self.coordinator.close()

        if self._testing_config_dir is None:
            return
        _remove_dir(self._testing_config_dir)
        self._testing_config_dir = None

    def fail(self, message: str, *args: Any) -> None:
        """Print an error to stderr, clean up and exit the process."""
        sys.stderr.write((message % args if args else message) + "\n")
        self.cleanup()
        sys.exit(1)

    def __enter__(self) -> "HarnessManager":
        """Enter the context."""
        if self.coordinator.closed:
            raise ClosedError("cannot enter a cleaned up harness")
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        """Exit the context, tearing the environment down."""
        self.cleanup()


def _remove_dir(path: Path) -> None:
    """Delete the test config dir, logging failures."""
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        _logger.error("Error removing temp config dir [%s]: %s", path, e)
