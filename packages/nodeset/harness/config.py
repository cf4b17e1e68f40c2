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

"""Harness configuration."""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from packages.nodeset.harness.beacon_mock import BeaconConfig
from packages.nodeset.harness.constants import (
    CLIENT_TIMEOUT_ENV_VAR,
    DEFAULT_CLIENT_TIMEOUT,
    HARDHAT_ENV_VAR,
    TEMP_DIR_PREFIX,
)
from packages.nodeset.harness.exceptions import InitializationError


@dataclass
class HarnessConfig:
    """Settings for bootstrapping a test harness."""

    hardhat_url: str
    client_timeout: float = DEFAULT_CLIENT_TIMEOUT
    beacon_config: BeaconConfig = field(default_factory=BeaconConfig.default)
    temp_dir_prefix: str = TEMP_DIR_PREFIX

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "HarnessConfig":
        """Build the config from environment variables."""
        environ = os.environ if environ is None else environ
        hardhat_url = environ.get(HARDHAT_ENV_VAR)
        if not hardhat_url:
            raise InitializationError(f"{HARDHAT_ENV_VAR} env var not set")

        timeout = environ.get(CLIENT_TIMEOUT_ENV_VAR)
        try:
            client_timeout = (
                float(timeout) if timeout is not None else DEFAULT_CLIENT_TIMEOUT
            )
        except ValueError as e:
            raise InitializationError(
                f"invalid {CLIENT_TIMEOUT_ENV_VAR} value {timeout!r}"
            ) from e
        if client_timeout <= 0:
            raise InitializationError(
                f"{CLIENT_TIMEOUT_ENV_VAR} must be positive, got {client_timeout}"
            )

        return cls(hardhat_url=hardhat_url, client_timeout=client_timeout)
