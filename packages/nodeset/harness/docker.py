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

"""Docker image for a local Hardhat node."""

import logging
import time
from typing import List

import docker
import requests
from aea.exceptions import enforce
from aea_test_autonomy.docker.base import DockerImage
from docker.models.containers import Container

from packages.nodeset.harness.constants import HARDHAT_ADDRESS, HARDHAT_PORT


DEFAULT_HARDHAT_IMAGE = "valory/open-autonomy-hardhat:latest"


class HardhatImage(DockerImage):
    """A plain Hardhat node to run snapshot tests against."""

    def __init__(
        self,
        client: docker.DockerClient,
        addr: str = HARDHAT_ADDRESS,
        port: int = HARDHAT_PORT,
        image_name: str = DEFAULT_HARDHAT_IMAGE,
    ):
        """Initialize."""
        super().__init__(client)
        self.addr = addr
        self.port = port
        self.image_name = image_name

    def create_many(self, nb_containers: int) -> List[Container]:
        """Instantiate the image in many containers, parametrized."""
        raise NotImplementedError()

    @property
    def image(self) -> str:
        """Get the image."""
        return self.image_name

    def create(self) -> Container:
        """Create and start the Hardhat container."""
        ports = {f"{HARDHAT_PORT}/tcp": ("0.0.0.0", self.port)}  # nosec
        container = self._client.containers.run(
            self.image,
            detach=True,
            ports=ports,
            extra_hosts={"host.docker.internal": "host-gateway"},
        )
        return container

    def wait(self, max_attempts: int = 30, sleep_rate: float = 1.0) -> bool:
        """
        Wait until the node answers JSON-RPC calls.

        :param max_attempts: max number of attempts.
        :param sleep_rate: the amount of time to sleep between different requests.
        :return: True if the wait was successful, False otherwise.
        """
        for i in range(max_attempts):
            try:
                response = requests.post(
                    f"{self.addr}:{self.port}",
                    json={
                        "jsonrpc": "2.0",
                        "method": "eth_blockNumber",
                        "params": [],
                        "id": 1,
                    },
                    timeout=5,
                )
                enforce(response.status_code == 200, "Hardhat not ready")
                enforce("result" in response.json(), "Hardhat not ready")
                logging.info("Hardhat ready")
                return True
            except Exception as e:  # pylint: disable=broad-except
                logging.error("Exception: %s: %s", type(e).__name__, str(e))
                logging.info(
                    "Attempt %s failed. Retrying in %s seconds...", i, sleep_rate
                )
                time.sleep(sleep_rate)
        return False
