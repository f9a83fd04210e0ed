# MIT License
# Copyright (c) 2025 Hashborn

import os
from typing import Dict, Optional

# Global Constants
DENOM = "nova"
DECIMALS = 9

# Stake rules
MIN_STAKE: int = 10_000_000_000   # base units
MIN_LOCK: int = 30                # days
LOCK_STEP: int = 15               # days; valid locks are 30, 45, 60, ...
DAY_SECS: int = 86_400
COOLDOWN_DAYS: int = 7

# Integer bounds of the persisted fields
U64_MAX: int = 2**64 - 1
I64_MAX: int = 2**63 - 1
I64_MIN: int = -(2**63)

# Published via /.well-known/security.txt
SECURITY_TXT: Dict[str, str] = {
    "name": "NOVA AI Staking",
    "project_url": "https://nova.galaxyhub.ai",
    "contacts": "admin@orberai.xyz",
    "policy": "https://www.nova.galaxyhub.ai/security-policy",
    "preferred_languages": "en,es",
    "source_code": "https://github.com/GalaxyHubLabs/NovaAI-Staking",
    "auditors": "None",
}

class NetworkConfig:
    def __init__(self,
                 network_id: str,
                 # Stake rules
                 min_stake: int = MIN_STAKE,
                 min_lock_days: int = MIN_LOCK,
                 lock_step_days: int = LOCK_STEP,
                 cooldown_days: int = COOLDOWN_DAYS,
                 day_secs: int = DAY_SECS,
                 # Address prefixes
                 bech32_prefix_acc: str = "nova",
                 bech32_prefix_pool: str = "novapool",
                 bech32_prefix_vault: str = "novavault",
                 bech32_prefix_stake: str = "novastake",
                 bech32_prefix_token: str = "novatok",
                 # Devnet faucet
                 faucet_enabled: bool = False,
                 faucet_max_amount: int = 0,
                 faucet_priv_key: Optional[str] = None):
        self.network_id = network_id
        self.min_stake = min_stake
        self.min_lock_days = min_lock_days
        self.lock_step_days = lock_step_days
        self.cooldown_days = cooldown_days
        self.day_secs = day_secs
        self.bech32_prefix_acc = bech32_prefix_acc
        self.bech32_prefix_pool = bech32_prefix_pool
        self.bech32_prefix_vault = bech32_prefix_vault
        self.bech32_prefix_stake = bech32_prefix_stake
        self.bech32_prefix_token = bech32_prefix_token
        self.faucet_enabled = faucet_enabled
        self.faucet_max_amount = faucet_max_amount
        self.faucet_priv_key = faucet_priv_key

    @property
    def cooldown_secs(self) -> int:
        return self.cooldown_days * self.day_secs

    def lock_secs(self, lock_days: int) -> int:
        return lock_days * self.day_secs

NETWORKS: Dict[str, NetworkConfig] = {
    "devnet": NetworkConfig(
        network_id="devnet",
        faucet_enabled=True,
        faucet_max_amount=1_000_000 * 10**DECIMALS,
        # Deterministic pool owner key for Devnet
        faucet_priv_key="4f3edf982522b4e51b7e8b5f2f9c4d1d7a9e5f8c2b6d4e1a3c5b7d9e0f1a2b3c"
    ),
    "testnet": NetworkConfig(
        network_id="testnet",
        faucet_enabled=True,
        faucet_max_amount=100_000 * 10**DECIMALS,
    ),
    "mainnet": NetworkConfig(
        network_id="mainnet",
    ),
}

CURRENT_NETWORK = NETWORKS[os.environ.get("STAKEPOOL_NETWORK", "devnet")]
