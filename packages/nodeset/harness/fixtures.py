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

"""Pytest fixtures for tests that run against the harness."""

import logging
import os
from typing import Generator, Optional

import docker
import pytest
from aea_test_autonomy.docker.base import launch_image

from packages.nodeset.harness.config import HarnessConfig
from packages.nodeset.harness.constants import (
    HARDHAT_ADDRESS,
    HARDHAT_ENV_VAR,
    HARDHAT_PORT,
)
from packages.nodeset.harness.docker import HardhatImage
from packages.nodeset.harness.manager import HarnessManager


@pytest.mark.integration
class UseHardhatTest:
    """Run the tests of the class against a dockerised Hardhat node and its own harness."""

    NETWORK_ADDRESS = HARDHAT_ADDRESS
    NETWORK_PORT = HARDHAT_PORT

    harness_manager: Optional[HarnessManager] = None

    @classmethod
    @pytest.fixture(autouse=True)
    def _start_hardhat_harness(
        cls,
        timeout: int = 5,
        max_attempts: int = 60,
    ) -> Generator:
        """Launch Hardhat, bootstrap a harness on it and tear both down afterwards."""
        yield from cls.run_hardhat_harness(timeout, max_attempts)

    @classmethod
    def run_hardhat_harness(cls, timeout: int, max_attempts: int) -> Generator:
        """Keep a harness over a dockerised Hardhat node alive for one yield."""
        hardhat_url = f"{cls.NETWORK_ADDRESS}:{cls.NETWORK_PORT}"
        image = HardhatImage(
            docker.from_env(), addr=cls.NETWORK_ADDRESS, port=cls.NETWORK_PORT
        )
        launcher = launch_image(image, timeout=timeout, max_attempts=max_attempts)
        try:
            for _ in launcher:
                logging.info(
                    "Bootstrapping harness against Hardhat at %s", hardhat_url
                )
                cls.harness_manager = HarnessManager.create(
                    HarnessConfig(hardhat_url=hardhat_url)
                )
                try:
                    yield
                finally:
                    cls.harness_manager.cleanup()
                    cls.harness_manager = None
        finally:
            launcher.close()


@pytest.fixture(scope="session")
def harness() -> Generator[HarnessManager, None, None]:
    """A harness against the node at HARDHAT_URL, cleaned up at session end."""
    if not os.environ.get(HARDHAT_ENV_VAR):
        pytest.skip(f"{HARDHAT_ENV_VAR} env var not set")
    manager = HarnessManager.create(HarnessConfig.from_env())
    yield manager
    manager.cleanup()


@pytest.fixture
def clean_state(harness: HarnessManager) -> Generator[HarnessManager, None, None]:
    """Hand the harness to a test and revert to the baseline afterwards."""
    yield harness
    harness.revert_to_baseline()
