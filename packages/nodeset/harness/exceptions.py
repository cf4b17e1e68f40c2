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

"""Errors raised by the snapshot harness."""

from typing import Optional


class HarnessError(Exception):
    """Base class for every harness error."""

    def __init__(
        self,
        message: str,
        backend: Optional[str] = None,
        operation: Optional[str] = None,
        snapshot_id: Optional[str] = None,
    ) -> None:
        """
        Initialize the error.

        :param message: the error message.
        :param backend: the backend the failure happened on, if any.
        :param operation: the operation that failed.
        :param snapshot_id: the snapshot token involved, if any.
        """
        super().__init__(message)
        self.backend = backend
        self.operation = operation
        self.snapshot_id = snapshot_id


class InitializationError(HarnessError):
    """The harness or coordinator could not be set up."""


class BackendUnavailableError(HarnessError):
    """A backend call could not be made at all."""


class SnapshotFailedError(HarnessError):
    """A backend refused or failed to produce a snapshot."""


class RevertFailedError(HarnessError):
    """A backend refused to revert to a snapshot."""


class InconsistentStateError(HarnessError):
    """The execution layer and consensus layer no longer agree."""

    def __init__(
        self,
        message: str,
        backend: Optional[str] = None,
        operation: Optional[str] = None,
        snapshot_id: Optional[str] = None,
        orphaned_snapshot_id: Optional[str] = None,
    ) -> None:
        """Initialize the error, keeping track of any orphaned execution snapshot."""
        super().__init__(message, backend, operation, snapshot_id)
        self.orphaned_snapshot_id = orphaned_snapshot_id


class PartialRevertError(RevertFailedError, InconsistentStateError):
    """The execution layer was reverted but the consensus layer was not."""


class BaselineRegenerationError(InconsistentStateError):
    """Reverting to the baseline worked but a new baseline could not be taken."""


class ReservedSnapshotError(HarnessError):
    """The baseline snapshot was used outside of the baseline lifecycle."""


class ClosedError(HarnessError):
    """An operation was attempted after teardown."""
