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

"""Execution-layer admin client for Hardhat-compatible nodes."""

import logging
from typing import Any, Dict, List, Optional

import requests
from web3 import Web3
from web3.exceptions import Web3Exception

from packages.nodeset.harness.constants import (
    DEFAULT_CLIENT_TIMEOUT,
    EVM_MINE,
    EVM_REVERT,
    EVM_SNAPSHOT,
    EXECUTION_LAYER,
    HARDHAT_MINE,
    HARDHAT_SET_BALANCE,
)
from packages.nodeset.harness.exceptions import (
    BackendUnavailableError,
    RevertFailedError,
    SnapshotFailedError,
)


_logger = logging.getLogger(__name__)


class ExecutionAdmin:
    """Runs admin RPC calls (snapshots, reverts, mining) against the execution client."""

    def __init__(self, w3: Web3) -> None:
        """Initialize with a connected web3 instance."""
        self.w3 = w3

    @classmethod
    def from_url(
        cls, url: str, timeout: float = DEFAULT_CLIENT_TIMEOUT
    ) -> "ExecutionAdmin":
        """Create an admin client for the node at the given URL."""
        provider = Web3.HTTPProvider(url, request_kwargs={"timeout": timeout})
        return cls(Web3(provider))

    def is_connected(self) -> bool:
        """Check whether the node answers."""
        try:
            return bool(self.w3.is_connected())
        except requests.exceptions.RequestException:
            return False

    def snapshot(self) -> str:
        """Snapshot the node state and return the node's snapshot token."""
        response = self._request(EVM_SNAPSHOT, [])
        error = response.get("error")
        if error is not None:
            raise SnapshotFailedError(
                f"error creating snapshot: {_error_message(error)}",
                backend=EXECUTION_LAYER,
                operation=EVM_SNAPSHOT,
            )
        snapshot_id = response.get("result")
        if not snapshot_id:
            raise SnapshotFailedError(
                "error creating snapshot: node returned no snapshot id",
                backend=EXECUTION_LAYER,
                operation=EVM_SNAPSHOT,
            )
        _logger.debug("Took execution-layer snapshot %s", snapshot_id)
        return str(snapshot_id)

    def revert(self, snapshot_id: str) -> None:
        """Revert the node to a snapshot. The snapshot is consumed by the node."""
        response = self._request(EVM_REVERT, [snapshot_id], snapshot_id)
        error = response.get("error")
        if error is not None:
            raise RevertFailedError(
                f"error reverting Hardhat to snapshot {snapshot_id}: {_error_message(error)}",
                backend=EXECUTION_LAYER,
                operation=EVM_REVERT,
                snapshot_id=snapshot_id,
            )
        if response.get("result") is not True:
            raise RevertFailedError(
                f"error reverting Hardhat to snapshot {snapshot_id}: snapshot does not exist",
                backend=EXECUTION_LAYER,
                operation=EVM_REVERT,
                snapshot_id=snapshot_id,
            )
        _logger.debug("Reverted execution layer to snapshot %s", snapshot_id)

    def mine(self, blocks: int = 1) -> None:
        """Mine a number of empty blocks."""
        response = self._request(HARDHAT_MINE, [hex(blocks)])
        if response.get("error") is None:
            return
        # Plain evm_mine for nodes without hardhat_mine
        for _ in range(blocks):
            response = self._request(EVM_MINE, [])
            error = response.get("error")
            if error is not None:
                raise Web3Exception(f"error mining block: {_error_message(error)}")

    def set_balance(self, address: str, wei: int) -> None:
        """Overwrite the balance of an account."""
        response = self._request(HARDHAT_SET_BALANCE, [address, hex(wei)])
        error = response.get("error")
        if error is not None:
            raise Web3Exception(
                f"error setting balance of {address}: {_error_message(error)}"
            )

    def block_number(self) -> int:
        """Get the current chain head."""
        try:
            return int(self.w3.eth.block_number)
        except requests.exceptions.RequestException as e:
            raise BackendUnavailableError(
                f"error reading block number: {e}",
                backend=EXECUTION_LAYER,
                operation="eth_blockNumber",
            ) from e

    def get_balance(self, address: str) -> int:
        """Get the balance of an account in wei."""
        try:
            return int(self.w3.eth.get_balance(Web3.to_checksum_address(address)))
        except requests.exceptions.RequestException as e:
            raise BackendUnavailableError(
                f"error reading balance of {address}: {e}",
                backend=EXECUTION_LAYER,
                operation="eth_getBalance",
            ) from e

    def _request(
        self, method: str, params: List[Any], snapshot_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Make a raw RPC request, translating transport failures."""
        try:
            return dict(self.w3.provider.make_request(method, params))
        except requests.exceptions.RequestException as e:
            raise BackendUnavailableError(
                f"error calling {method} on the execution client: {e}",
                backend=EXECUTION_LAYER,
                operation=method,
                snapshot_id=snapshot_id,
            ) from e


def _error_message(error: Any) -> str:
    """Extract the message of a JSON-RPC error object."""
    if isinstance(error, dict):
        return str(error.get("message", error))
    return str(error)
