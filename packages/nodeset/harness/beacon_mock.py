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

"""In-process mock of a beacon node, with named snapshots."""

import copy
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from packages.nodeset.harness.constants import (
    CONSENSUS_LAYER,
    DEFAULT_CHAIN_ID,
    DEFAULT_DEPOSIT_CONTRACT,
    DEFAULT_SECONDS_PER_SLOT,
    DEFAULT_SLOTS_PER_EPOCH,
    DEFAULT_VALIDATOR_BALANCE,
    FAR_FUTURE_EPOCH,
)
from packages.nodeset.harness.exceptions import RevertFailedError, SnapshotFailedError


_logger = logging.getLogger(__name__)


class ValidatorStatus(Enum):
    """Validator statuses as reported by the beacon API."""

    PENDING_INITIALIZED = "pending_initialized"
    PENDING_QUEUED = "pending_queued"
    ACTIVE_ONGOING = "active_ongoing"
    ACTIVE_EXITING = "active_exiting"
    ACTIVE_SLASHED = "active_slashed"
    EXITED_UNSLASHED = "exited_unslashed"
    EXITED_SLASHED = "exited_slashed"
    WITHDRAWAL_POSSIBLE = "withdrawal_possible"
    WITHDRAWAL_DONE = "withdrawal_done"


@dataclass
class BeaconConfig:
    """Chain parameters of the mock beacon node."""

    chain_id: int = DEFAULT_CHAIN_ID
    genesis_time: int = 0
    seconds_per_slot: int = DEFAULT_SECONDS_PER_SLOT
    slots_per_epoch: int = DEFAULT_SLOTS_PER_EPOCH
    deposit_contract: str = DEFAULT_DEPOSIT_CONTRACT
    first_validator_index: int = 0

    @classmethod
    def default(cls) -> "BeaconConfig":
        """Get a config with genesis set to now."""
        return cls(genesis_time=int(time.time()))


@dataclass
class Validator:
    """A validator tracked by the mock."""

    index: int
    pubkey: str
    withdrawal_credentials: str
    status: ValidatorStatus = ValidatorStatus.PENDING_INITIALIZED
    balance: int = DEFAULT_VALIDATOR_BALANCE
    slashed: bool = False
    activation_epoch: int = FAR_FUTURE_EPOCH
    exit_epoch: int = FAR_FUTURE_EPOCH


@dataclass
class BeaconMockDatabase:
    """The mutable consensus-layer state."""

    config: BeaconConfig
    current_slot: int = 0
    validators: List[Validator] = field(default_factory=list)
    _by_pubkey: Dict[str, Validator] = field(
        default_factory=dict, repr=False, compare=False
    )

    def add_validator(
        self,
        pubkey: str,
        withdrawal_credentials: str,
        balance: int = DEFAULT_VALIDATOR_BALANCE,
    ) -> Validator:
        """Register a new validator. Pubkeys must be unique."""
        pubkey = pubkey.lower()
        if pubkey in self._by_pubkey:
            raise ValueError(f"validator with pubkey {pubkey} already exists")
        validator = Validator(
            index=self.config.first_validator_index + len(self.validators),
            pubkey=pubkey,
            withdrawal_credentials=withdrawal_credentials,
            balance=balance,
        )
        self.validators.append(validator)
        self._by_pubkey[pubkey] = validator
        return validator

    def get_validator_by_index(self, index: int) -> Optional[Validator]:
        """Get a validator by its index."""
        offset = index - self.config.first_validator_index
        if 0 <= offset < len(self.validators):
            return self.validators[offset]
        return None

    def get_validator_by_pubkey(self, pubkey: str) -> Optional[Validator]:
        """Get a validator by its pubkey."""
        return self._by_pubkey.get(pubkey.lower())

    def set_slot(self, slot: int) -> None:
        """Move the chain head to a slot."""
        if slot < 0:
            raise ValueError(f"invalid slot {slot}")
        self.current_slot = slot

    def advance_slot(self, slots: int = 1) -> int:
        """Advance the chain head and return the new slot."""
        self.set_slot(self.current_slot + slots)
        return self.current_slot

    @property
    def current_epoch(self) -> int:
        """Get the epoch of the current slot."""
        return self.current_slot // self.config.slots_per_epoch

    def clone(self) -> "BeaconMockDatabase":
        """Get an independent copy of the database."""
        return copy.deepcopy(self)

    def state_summary(self) -> Dict:
        """Get a comparable view of the whole state."""
        return {
            "current_slot": self.current_slot,
            "validators": [
                (
                    v.index,
                    v.pubkey,
                    v.status.value,
                    v.balance,
                    v.slashed,
                    v.activation_epoch,
                    v.exit_epoch,
                )
                for v in self.validators
            ],
        }


class BeaconMockManager:
    """Admin handle for the mock beacon node."""

    def __init__(self, config: Optional[BeaconConfig] = None) -> None:
        """Initialize the manager with a fresh database."""
        self.config = config if config is not None else BeaconConfig.default()
        self.database = BeaconMockDatabase(self.config)
        self._snapshots: Dict[str, BeaconMockDatabase] = {}

    @property
    def snapshot_names(self) -> List[str]:
        """Get the names of the recorded snapshots."""
        return list(self._snapshots)

    def take_snapshot(self, name: str) -> None:
        """Record the current state under the given name."""
        if not name:
            raise SnapshotFailedError(
                "cannot take a beacon snapshot without a name",
                backend=CONSENSUS_LAYER,
                operation="take_snapshot",
            )
        # Re-recording a name makes it the newest snapshot
        self._snapshots.pop(name, None)
        self._snapshots[name] = self.database.clone()
        _logger.debug("Took beacon snapshot %s", name)

    def revert_to_snapshot(self, name: str) -> None:
        """Restore the state under the given name, dropping it and every later snapshot."""
        snapshot = self._snapshots.get(name)
        if snapshot is None:
            raise RevertFailedError(
                f"beacon snapshot {name} does not exist",
                backend=CONSENSUS_LAYER,
                operation="revert_to_snapshot",
                snapshot_id=name,
            )
        names = list(self._snapshots)
        for stale in names[names.index(name) :]:
            del self._snapshots[stale]
        self.database = snapshot
        _logger.debug("Reverted beacon mock to snapshot %s", name)

    def add_validator(
        self,
        pubkey: str,
        withdrawal_credentials: str,
        balance: int = DEFAULT_VALIDATOR_BALANCE,
    ) -> Validator:
        """Register a new validator."""
        return self.database.add_validator(pubkey, withdrawal_credentials, balance)

    def activate_validator(self, pubkey: str) -> Validator:
        """Mark a validator active as of the current epoch."""
        validator = self._require_validator(pubkey)
        validator.status = ValidatorStatus.ACTIVE_ONGOING
        validator.activation_epoch = self.database.current_epoch
        return validator

    def exit_validator(self, pubkey: str) -> Validator:
        """Mark a validator exited as of the current epoch."""
        validator = self._require_validator(pubkey)
        validator.status = (
            ValidatorStatus.EXITED_SLASHED
            if validator.slashed
            else ValidatorStatus.EXITED_UNSLASHED
        )
        validator.exit_epoch = self.database.current_epoch
        return validator

    def slash_validator(self, pubkey: str) -> Validator:
        """Slash a validator."""
        validator = self._require_validator(pubkey)
        validator.slashed = True
        validator.status = ValidatorStatus.ACTIVE_SLASHED
        return validator

    def set_validator_balance(self, pubkey: str, balance: int) -> Validator:
        """Overwrite the balance (gwei) of a validator."""
        validator = self._require_validator(pubkey)
        validator.balance = balance
        return validator

    def get_validator_status(self, pubkey: str) -> ValidatorStatus:
        """Get the status of a validator."""
        return self._require_validator(pubkey).status

    def get_current_slot(self) -> int:
        """Get the current slot."""
        return self.database.current_slot

    def get_current_epoch(self) -> int:
        """Get the current epoch."""
        return self.database.current_epoch

    def set_slot(self, slot: int) -> None:
        """Move the chain head to a slot."""
        self.database.set_slot(slot)

    def advance_slot(self, slots: int = 1) -> int:
        """Advance the chain head."""
        return self.database.advance_slot(slots)

    def _require_validator(self, pubkey: str) -> Validator:
        validator = self.database.get_validator_by_pubkey(pubkey)
        if validator is None:
            raise KeyError(f"validator with pubkey {pubkey} not found")
        return validator
