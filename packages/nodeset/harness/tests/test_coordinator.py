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

"""Tests for the dual-backend snapshot coordinator."""

import logging
from typing import List, Tuple
from unittest.mock import patch

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from packages.nodeset.harness.beacon_mock import BeaconConfig, BeaconMockManager
from packages.nodeset.harness.constants import CONSENSUS_LAYER, EXECUTION_LAYER
from packages.nodeset.harness.coordinator import SnapshotCoordinator
from packages.nodeset.harness.exceptions import (
    BackendUnavailableError,
    BaselineRegenerationError,
    ClosedError,
    InconsistentStateError,
    InitializationError,
    PartialRevertError,
    ReservedSnapshotError,
    RevertFailedError,
    SnapshotFailedError,
)
from packages.nodeset.harness.tests.mock_backends import MockExecutionAdmin


WITHDRAWAL_CREDENTIALS = "0x01" + "00" * 11 + "ab" * 20


def make_pubkey(i: int) -> str:
    """Get a deterministic validator pubkey."""
    return "0x" + f"{i:096x}"


def apply_mutations(
    execution: MockExecutionAdmin,
    beacon: BeaconMockManager,
    mutations: List[Tuple[str, int]],
) -> None:
    """Mutate both backends."""
    for kind, amount in mutations:
        if kind == "mine":
            execution.mine(amount)
        elif kind == "balance":
            execution.set_balance(f"0x{amount:040x}", amount * 10**18)
        elif kind == "slot":
            beacon.advance_slot(amount)
        else:
            beacon.add_validator(
                make_pubkey(len(beacon.database.validators) + 1),
                WITHDRAWAL_CREDENTIALS,
            )


class BaseCoordinatorTest:
    """Sets up a coordinator over in-memory backends."""

    def setup_method(self) -> None:
        """Setup the backends."""
        self.execution = MockExecutionAdmin()
        self.beacon = BeaconMockManager(BeaconConfig(genesis_time=1_600_000_000))
        self.coordinator = SnapshotCoordinator(self.execution, self.beacon)

    def joint_state(self) -> Tuple:
        """Get the state of both backends."""
        return self.execution.state(), self.beacon.database.state_summary()


class TestInitialize(BaseCoordinatorTest):
    """Tests for binding the backends."""

    def test_missing_execution_handle(self) -> None:
        """A missing execution handle is rejected."""
        with pytest.raises(InitializationError) as exc_info:
            SnapshotCoordinator(None, self.beacon)  # type: ignore
        assert exc_info.value.backend == EXECUTION_LAYER

    def test_missing_consensus_handle(self) -> None:
        """A missing consensus handle is rejected."""
        with pytest.raises(InitializationError) as exc_info:
            SnapshotCoordinator(self.execution, None)  # type: ignore
        assert exc_info.value.backend == CONSENSUS_LAYER

    def test_no_snapshot_on_init(self) -> None:
        """Binding does not touch the backends."""
        assert self.execution.calls == []
        assert self.beacon.snapshot_names == []
        assert self.coordinator.baseline_id is None

    def test_baseline_supplied_by_caller(self) -> None:
        """A caller can hand over an already established baseline."""
        baseline = self.execution.snapshot()
        self.beacon.take_snapshot(baseline)
        coordinator = SnapshotCoordinator(self.execution, self.beacon, baseline)
        assert coordinator.baseline_id == baseline
        coordinator.revert_to_baseline()

    def test_revert_to_baseline_without_baseline(self) -> None:
        """There is nothing to revert to before a baseline exists."""
        with pytest.raises(InitializationError):
            self.coordinator.revert_to_baseline()
        assert self.execution.calls == []


class TestTakeSnapshot(BaseCoordinatorTest):
    """Tests for taking joint snapshots."""

    def test_consensus_mirrors_execution_token(self) -> None:
        """Both layers record the snapshot under the execution-layer token."""
        snapshot_id = self.coordinator.take_snapshot()
        assert snapshot_id == "0x1"
        assert self.beacon.snapshot_names == [snapshot_id]

    def test_execution_failure_skips_consensus(self) -> None:
        """No consensus-layer snapshot is attempted without a token."""
        self.execution.refuse_snapshots = True
        with patch.object(self.beacon, "take_snapshot") as take_snapshot:
            with pytest.raises(SnapshotFailedError) as exc_info:
                self.coordinator.take_snapshot()
        take_snapshot.assert_not_called()
        assert exc_info.value.backend == EXECUTION_LAYER
        assert not isinstance(exc_info.value, InconsistentStateError)

    def test_execution_unavailable(self) -> None:
        """Transport failures are surfaced as they are."""
        self.execution.connected = False
        with pytest.raises(BackendUnavailableError):
            self.coordinator.take_snapshot()
        assert self.beacon.snapshot_names == []

    def test_consensus_failure_orphans_execution_snapshot(self) -> None:
        """A failed mirror never exposes the token nor moves the baseline."""
        baseline = self.coordinator.establish_baseline()
        with patch.object(
            self.beacon, "take_snapshot", side_effect=ConnectionError("disconnected")
        ):
            with pytest.raises(InconsistentStateError) as exc_info:
                self.coordinator.take_snapshot()

        assert exc_info.value.orphaned_snapshot_id == "0x2"
        assert exc_info.value.backend == CONSENSUS_LAYER
        assert isinstance(exc_info.value.__cause__, ConnectionError)
        assert self.coordinator.orphaned_snapshots == ["0x2"]
        assert self.coordinator.baseline_id == baseline
        assert "0x2" not in self.beacon.snapshot_names


class TestRevertToSnapshot(BaseCoordinatorTest):
    """Tests for joint reverts."""

    def test_revert_restores_chain_head(self) -> None:
        """Advance a block, snapshot, mutate, revert: the head is back."""
        self.execution.mine()
        self.beacon.advance_slot(4)
        head = self.execution.block_number
        state = self.joint_state()

        snapshot_id = self.coordinator.take_snapshot()
        self.execution.mine(5)
        self.beacon.advance_slot(10)
        self.beacon.add_validator(make_pubkey(1), WITHDRAWAL_CREDENTIALS)

        self.coordinator.revert_to_snapshot(snapshot_id)
        assert self.execution.block_number == head
        assert self.joint_state() == state

    def test_execution_failure_leaves_consensus_untouched(self) -> None:
        """The consensus layer is not reverted when the execution layer refuses."""
        snapshot_id = self.coordinator.take_snapshot()
        self.beacon.advance_slot(3)
        before = self.beacon.database.state_summary()

        with pytest.raises(RevertFailedError) as exc_info:
            self.coordinator.revert_to_snapshot("0x99")

        assert not isinstance(exc_info.value, PartialRevertError)
        assert exc_info.value.backend == EXECUTION_LAYER
        assert exc_info.value.snapshot_id == "0x99"
        assert self.beacon.database.state_summary() == before
        assert not self.coordinator.dirty
        self.coordinator.revert_to_snapshot(snapshot_id)

    def test_execution_unavailable_leaves_consensus_untouched(self) -> None:
        """A transport failure is fail-fast too."""
        snapshot_id = self.coordinator.take_snapshot()
        self.beacon.advance_slot(3)
        self.execution.connected = False

        with pytest.raises(BackendUnavailableError):
            self.coordinator.revert_to_snapshot(snapshot_id)
        assert self.beacon.get_current_slot() == 3

    def test_consensus_failure_is_partial_revert(self) -> None:
        """Execution reverted but consensus not: inconsistent and dirty."""
        snapshot_id = self.coordinator.take_snapshot()
        self.execution.mine(2)

        with patch.object(
            self.beacon, "revert_to_snapshot", side_effect=ConnectionError("gone")
        ):
            with pytest.raises(PartialRevertError) as exc_info:
                self.coordinator.revert_to_snapshot(snapshot_id)

        assert isinstance(exc_info.value, InconsistentStateError)
        assert isinstance(exc_info.value, RevertFailedError)
        assert exc_info.value.backend == CONSENSUS_LAYER
        assert self.execution.block_number == 0
        assert self.coordinator.dirty

    def test_unknown_consensus_snapshot(self) -> None:
        """An execution token the beacon mock never saw cannot be fully reverted."""
        snapshot_id = self.execution.snapshot()
        with pytest.raises(PartialRevertError):
            self.coordinator.revert_to_snapshot(snapshot_id)


class TestRevertToBaseline(BaseCoordinatorTest):
    """Tests for the baseline lifecycle."""

    def test_baseline_is_renewed(self) -> None:
        """Reverting to the baseline works repeatedly."""
        initial = self.joint_state()
        first = self.coordinator.establish_baseline()

        self.execution.mine(3)
        self.beacon.advance_slot(2)
        self.coordinator.revert_to_baseline()
        second = self.coordinator.baseline_id
        assert self.joint_state() == initial

        self.execution.mine(1)
        self.coordinator.revert_to_baseline()
        assert self.joint_state() == initial
        assert len({first, second, self.coordinator.baseline_id}) == 3

    def test_new_baseline_differs(self) -> None:
        """B1 != B0 after a revert to baseline."""
        b0 = self.coordinator.establish_baseline()
        self.coordinator.revert_to_baseline()
        assert self.coordinator.baseline_id != b0
        assert self.coordinator.baseline_id in self.beacon.snapshot_names

    def test_snapshots_stay_bounded(self) -> None:
        """Repeated baseline reverts do not pile up consensus-layer snapshots."""
        self.coordinator.establish_baseline()
        for _ in range(50):
            self.execution.mine()
            self.beacon.advance_slot()
            self.coordinator.revert_to_baseline()
        assert self.beacon.snapshot_names == [self.coordinator.baseline_id]
        assert self.execution.block_number == 0

    def test_replacing_baseline_is_logged(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Establishing a second baseline reports the one it replaces."""
        first = self.coordinator.establish_baseline()
        with caplog.at_level(logging.WARNING):
            second = self.coordinator.establish_baseline()
        assert f"Replaced baseline snapshot {first} with {second}" in caplog.text
        assert self.coordinator.baseline_id == second

    def test_regeneration_failure(self) -> None:
        """A missing new baseline is reported and never reused silently."""
        self.coordinator.establish_baseline()
        initial = self.joint_state()
        self.execution.mine(4)
        self.execution.refuse_snapshots = True

        with pytest.raises(BaselineRegenerationError) as exc_info:
            self.coordinator.revert_to_baseline()
        assert isinstance(exc_info.value, InconsistentStateError)
        assert exc_info.value.snapshot_id == "0x1"
        assert self.joint_state() == initial
        assert self.coordinator.baseline_id is None

        self.execution.refuse_snapshots = False
        with pytest.raises(InitializationError):
            self.coordinator.revert_to_baseline()

    def test_regeneration_failure_on_consensus(self) -> None:
        """An orphaned replacement baseline is tracked."""
        self.coordinator.establish_baseline()
        with patch.object(
            self.beacon, "take_snapshot", side_effect=ConnectionError("gone")
        ):
            with pytest.raises(BaselineRegenerationError) as exc_info:
                self.coordinator.revert_to_baseline()
        assert exc_info.value.orphaned_snapshot_id == "0x2"
        assert self.coordinator.orphaned_snapshots == ["0x2"]

    def test_partial_revert_drops_baseline(self) -> None:
        """A baseline consumed by a partial revert is not kept."""
        self.coordinator.establish_baseline()
        with patch.object(
            self.beacon, "revert_to_snapshot", side_effect=ConnectionError("gone")
        ):
            with pytest.raises(PartialRevertError):
                self.coordinator.revert_to_baseline()
        assert self.coordinator.baseline_id is None

    def test_failed_execution_revert_keeps_baseline(self) -> None:
        """A transport failure before anything was reverted keeps the baseline."""
        baseline = self.coordinator.establish_baseline()
        self.execution.connected = False
        with pytest.raises(BackendUnavailableError):
            self.coordinator.revert_to_baseline()
        assert self.coordinator.baseline_id == baseline

        self.execution.connected = True
        self.coordinator.revert_to_baseline()


class TestCustomSnapshots(BaseCoordinatorTest):
    """Tests for test-author checkpoints."""

    def test_custom_snapshot_leaves_baseline(self) -> None:
        """Custom checkpoints have no baseline side effect."""
        baseline = self.coordinator.establish_baseline()
        self.execution.mine()
        checkpoint = self.coordinator.create_custom_snapshot()
        self.execution.mine(2)

        self.coordinator.revert_to_custom_snapshot(checkpoint)
        assert self.execution.block_number == 1
        assert self.coordinator.baseline_id == baseline

        self.coordinator.revert_to_baseline()
        assert self.execution.block_number == 0

    def test_baseline_token_is_reserved(self) -> None:
        """The baseline can only be used through revert_to_baseline."""
        baseline = self.coordinator.establish_baseline()
        self.execution.mine(2)

        with pytest.raises(ReservedSnapshotError, match="revert_to_baseline"):
            self.coordinator.revert_to_custom_snapshot(baseline)
        with pytest.raises(ReservedSnapshotError):
            self.coordinator.revert_to_snapshot(baseline)

        assert self.execution.calls == ["snapshot"]
        assert self.execution.block_number == 2
        assert self.coordinator.baseline_id == baseline
        self.coordinator.revert_to_baseline()
        assert self.execution.block_number == 0

    def test_custom_snapshot_is_single_use(self) -> None:
        """The execution layer cannot revert to the same checkpoint twice."""
        checkpoint = self.coordinator.create_custom_snapshot()
        self.coordinator.revert_to_custom_snapshot(checkpoint)
        with pytest.raises(RevertFailedError):
            self.coordinator.revert_to_custom_snapshot(checkpoint)


class TestClose(BaseCoordinatorTest):
    """Tests for closing the coordinator."""

    def test_close_twice(self) -> None:
        """Closing is idempotent."""
        self.coordinator.establish_baseline()
        self.coordinator.close()
        self.coordinator.close()
        assert self.coordinator.closed
        assert self.coordinator.baseline_id is None

    @pytest.mark.parametrize(
        "operation, args",
        [
            ("establish_baseline", ()),
            ("take_snapshot", ()),
            ("revert_to_snapshot", ("0x1",)),
            ("revert_to_baseline", ()),
            ("create_custom_snapshot", ()),
            ("revert_to_custom_snapshot", ("0x1",)),
        ],
    )
    def test_operations_after_close(self, operation: str, args: Tuple) -> None:
        """Every operation is refused once closed."""
        self.coordinator.close()
        with pytest.raises(ClosedError):
            getattr(self.coordinator, operation)(*args)
        assert self.execution.calls == []


mutation = st.tuples(
    st.sampled_from(["mine", "balance", "slot", "validator"]),
    st.integers(min_value=1, max_value=5),
)


@settings(max_examples=50, deadline=None)
@given(before=st.lists(mutation, max_size=8), after=st.lists(mutation, max_size=8))
def test_revert_round_trip(
    before: List[Tuple[str, int]], after: List[Tuple[str, int]]
) -> None:
    """Reverting to a snapshot restores both backends whatever happened since."""
    execution = MockExecutionAdmin()
    beacon = BeaconMockManager(BeaconConfig(genesis_time=0))
    coordinator = SnapshotCoordinator(execution, beacon)

    apply_mutations(execution, beacon, before)
    expected = execution.state(), beacon.database.state_summary()
    snapshot_id = coordinator.take_snapshot()

    apply_mutations(execution, beacon, after)
    coordinator.revert_to_snapshot(snapshot_id)

    assert (execution.state(), beacon.database.state_summary()) == expected
