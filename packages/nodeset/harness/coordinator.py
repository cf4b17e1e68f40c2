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

"""Coordinates snapshots and reverts across the execution and consensus layers."""

import logging
from typing import List, Optional, Protocol

from packages.nodeset.harness.constants import CONSENSUS_LAYER, EXECUTION_LAYER
from packages.nodeset.harness.exceptions import (
    BackendUnavailableError,
    BaselineRegenerationError,
    ClosedError,
    HarnessError,
    InconsistentStateError,
    InitializationError,
    PartialRevertError,
    ReservedSnapshotError,
    RevertFailedError,
    SnapshotFailedError,
)


_logger = logging.getLogger(__name__)


class ExecutionAdminInterface(Protocol):
    """What the coordinator needs from the execution layer."""

    def snapshot(self) -> str:
        """Snapshot the state and return the token."""

    def revert(self, snapshot_id: str) -> None:
        """Revert to the state under the token."""


class ConsensusAdminInterface(Protocol):
    """What the coordinator needs from the consensus layer."""

    def take_snapshot(self, name: str) -> None:
        """Record the current state under a caller-supplied token."""

    def revert_to_snapshot(self, name: str) -> None:
        """Restore the state under the token."""


class SnapshotCoordinator:
    """
    Snapshot and revert two backends as one.

    The execution layer leads: its snapshot token is the shared identifier and
    the consensus layer mirrors its state under that same token. Operations on
    a single instance must be serialised by the caller.
    """

    def __init__(
        self,
        execution_admin: ExecutionAdminInterface,
        consensus_admin: ConsensusAdminInterface,
        baseline_id: Optional[str] = None,
    ) -> None:
        """
        Bind the two backend handles.

        :param execution_admin: the execution-layer admin handle.
        :param consensus_admin: the consensus-layer admin handle.
        :param baseline_id: an already established joint snapshot to use as baseline.
        """
        if execution_admin is None:
            raise InitializationError(
                "execution-layer admin handle is not set", backend=EXECUTION_LAYER
            )
        if consensus_admin is None:
            raise InitializationError(
                "consensus-layer admin handle is not set", backend=CONSENSUS_LAYER
            )
        self._execution = execution_admin
        self._consensus = consensus_admin
        self._baseline_id = baseline_id
        self._orphaned_snapshots: List[str] = []
        self._dirty = False
        self._closed = False

    @property
    def baseline_id(self) -> Optional[str]:
        """Get the current baseline snapshot token."""
        return self._baseline_id

    @property
    def orphaned_snapshots(self) -> List[str]:
        """Get execution-layer snapshots that have no consensus-layer counterpart."""
        return list(self._orphaned_snapshots)

    @property
    def dirty(self) -> bool:
        """Whether a partial revert left the backends out of step."""
        return self._dirty

    @property
    def closed(self) -> bool:
        """Whether the coordinator has been closed."""
        return self._closed

    def establish_baseline(self) -> str:
        """Snapshot the current joint state and make it the baseline."""
        self._ensure_open("establish_baseline")
        previous = self._baseline_id
        self._baseline_id = self.take_snapshot()
        if previous is not None:
            _logger.warning(
                "Replaced baseline snapshot %s with %s", previous, self._baseline_id
            )
        _logger.info("Established baseline snapshot %s", self._baseline_id)
        return self._baseline_id

    def take_snapshot(self) -> str:
        """
        Snapshot both backends under one token.

        :return: the shared snapshot token.
        """
        self._ensure_open("take_snapshot")

        # Phase 1: the execution layer issues the token
        try:
            snapshot_id = self._execution.snapshot()
        except BackendUnavailableError:
            raise
        except Exception as e:  # pylint: disable=broad-except
            raise SnapshotFailedError(
                f"error creating snapshot: {e}",
                backend=EXECUTION_LAYER,
                operation="take_snapshot",
            ) from e

        # Phase 2: the consensus layer mirrors its state under that token
        try:
            self._consensus.take_snapshot(snapshot_id)
        except Exception as e:  # pylint: disable=broad-except
            self._orphaned_snapshots.append(snapshot_id)
            _logger.warning(
                "Execution-layer snapshot %s is orphaned: consensus-layer snapshot failed: %s",
                snapshot_id,
                e,
            )
            raise InconsistentStateError(
                f"error creating consensus-layer snapshot {snapshot_id}: {e}",
                backend=CONSENSUS_LAYER,
                operation="take_snapshot",
                orphaned_snapshot_id=snapshot_id,
            ) from e

        return snapshot_id

    def revert_to_snapshot(self, snapshot_id: str) -> None:
        """
        Revert both backends to a snapshot.

        The consensus layer is only reverted once the execution layer has been.

        :param snapshot_id: the shared snapshot token.
        """
        self._ensure_open("revert_to_snapshot")
        if snapshot_id is not None and snapshot_id == self._baseline_id:
            raise ReservedSnapshotError(
                f"snapshot {snapshot_id} is the baseline, use revert_to_baseline",
                operation="revert_to_snapshot",
                snapshot_id=snapshot_id,
            )
        self._revert(snapshot_id)

    def _revert(self, snapshot_id: str) -> None:
        try:
            self._execution.revert(snapshot_id)
        except BackendUnavailableError:
            raise
        except Exception as e:  # pylint: disable=broad-except
            raise RevertFailedError(
                f"error reverting the execution layer to snapshot {snapshot_id}: {e}",
                backend=EXECUTION_LAYER,
                operation="revert_to_snapshot",
                snapshot_id=snapshot_id,
            ) from e

        try:
            self._consensus.revert_to_snapshot(snapshot_id)
        except Exception as e:  # pylint: disable=broad-except
            self._dirty = True
            _logger.error(
                "Execution layer reverted to %s but the consensus layer did not: %s",
                snapshot_id,
                e,
            )
            raise PartialRevertError(
                f"error reverting the consensus layer to snapshot {snapshot_id}: {e}",
                backend=CONSENSUS_LAYER,
                operation="revert_to_snapshot",
                snapshot_id=snapshot_id,
            ) from e

    def revert_to_baseline(self) -> None:
        """Revert both backends to the baseline and take a fresh baseline."""
        self._ensure_open("revert_to_baseline")
        if self._baseline_id is None:
            raise InitializationError(
                "no usable baseline snapshot", operation="revert_to_baseline"
            )

        baseline_id = self._baseline_id
        try:
            self._revert(baseline_id)
        except PartialRevertError:
            self._baseline_id = None
            raise

        # The execution layer consumes a snapshot on revert
        self._baseline_id = None
        try:
            self._baseline_id = self.take_snapshot()
        except HarnessError as e:
            _logger.error(
                "Reverted to baseline %s but could not take a new baseline: %s",
                baseline_id,
                e,
            )
            raise BaselineRegenerationError(
                f"error creating baseline snapshot: {e}",
                backend=e.backend,
                operation="revert_to_baseline",
                snapshot_id=baseline_id,
                orphaned_snapshot_id=getattr(e, "orphaned_snapshot_id", None),
            ) from e
        _logger.debug(
            "Replaced baseline snapshot %s with %s", baseline_id, self._baseline_id
        )

    def create_custom_snapshot(self) -> str:
        """Take a checkpoint that is independent of the baseline."""
        return self.take_snapshot()

    def revert_to_custom_snapshot(self, snapshot_id: str) -> None:
        """Revert to a checkpoint taken with create_custom_snapshot."""
        self.revert_to_snapshot(snapshot_id)

    def close(self) -> None:
        """Release the backend handles. Closing twice is a no-op."""
        if self._closed:
            return
        self._closed = True
        self._baseline_id = None
        if self._orphaned_snapshots:
            _logger.warning(
                "Closing with orphaned execution-layer snapshots: %s",
                ", ".join(self._orphaned_snapshots),
            )

    def _ensure_open(self, operation: str) -> None:
        if self._closed:
            raise ClosedError(
                f"cannot {operation}: the snapshot coordinator is closed",
                operation=operation,
            )
