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

"""Harness constants."""

# Environment variables
HARDHAT_ENV_VAR = "HARDHAT_URL"
CLIENT_TIMEOUT_ENV_VAR = "HARNESS_CLIENT_TIMEOUT"

# Backend names used in error context
EXECUTION_LAYER = "execution"
CONSENSUS_LAYER = "consensus"

# Execution-layer admin RPC methods
EVM_SNAPSHOT = "evm_snapshot"
EVM_REVERT = "evm_revert"
EVM_MINE = "evm_mine"
HARDHAT_MINE = "hardhat_mine"
HARDHAT_SET_BALANCE = "hardhat_setBalance"

# Seconds allowed for a single backend client call
DEFAULT_CLIENT_TIMEOUT = 10

# Temp directory for generated test configuration
TEMP_DIR_PREFIX = "hd-tests-"

# Hardhat
HARDHAT_ADDRESS = "http://127.0.0.1"
HARDHAT_PORT = 8545
HARDHAT_RPC = f"{HARDHAT_ADDRESS}:{HARDHAT_PORT}"

# Beacon mock defaults
DEFAULT_CHAIN_ID = 31337
DEFAULT_SECONDS_PER_SLOT = 12
DEFAULT_SLOTS_PER_EPOCH = 32
DEFAULT_DEPOSIT_CONTRACT = "0x00000000219ab540356cBB839Cbe05303d7705Fa"
DEFAULT_VALIDATOR_BALANCE = 32 * 10**9  # 32 ETH in gwei
FAR_FUTURE_EPOCH = 2**64 - 1
