"""
Single-process network: engine, ledger, disclosure service and wallets.

``LocalNetwork`` is what a development session or a test runs against. It
registers its ledger address in the configuration under its chain id, and
clients resolve the ledger from there, the same way they would for any
other network.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from loguru import logger

from .client import SleepGuardClient
from .core.config import LOCAL_CHAIN_ID, Config, resolve_ledger_address
from .core.exceptions import ConfigurationError
from .core.events import EventBus
from .core.utils.addresses import derive_address
from .decryption import BatchDecryptor
from .fhe.disclosure import DisclosureService
from .fhe.engine import DEFAULT_KEY_LENGTH, HomomorphicEngine
from .grants import DecryptionGrantManager, GrantStore
from .ledger.store import SleepGuardLedger
from .payload import EncryptedPayloadBuilder
from .wallet import Approver, Wallet


def deterministic_address(label: str, chain_id: int) -> str:
    return derive_address(f"{label}:{chain_id}".encode())


class LocalNetwork:
    """Everything a client needs, wired together in one process."""

    def __init__(
        self,
        config: Config | None = None,
        chain_id: int = LOCAL_CHAIN_ID,
        key_length: int = DEFAULT_KEY_LENGTH,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or Config()
        self.chain_id = chain_id
        self.clock = clock

        self.engine = HomomorphicEngine(chain_id, key_length=key_length)
        self.ledger = SleepGuardLedger(self.engine, deterministic_address("sleepguard-ledger", chain_id), clock=clock)
        self.decryption_verifier = deterministic_address("decryption", chain_id)
        self.disclosure = DisclosureService(self.engine, self.decryption_verifier, clock=clock)

        self.config.set(f"networks.{chain_id}.ledger_address", self.ledger.address)
        logger.debug(f"Local network {chain_id} ready; ledger at {self.ledger.address}")

    def create_wallet(self, seed: bytes | None = None, approver: Approver | None = None) -> Wallet:
        if seed is not None:
            return Wallet.from_seed(seed, approver=approver)
        return Wallet(approver=approver)

    def client_for(
        self,
        wallet: Wallet,
        events: EventBus | None = None,
        grant_store: GrantStore | None = None,
    ) -> SleepGuardClient:
        ledger_address = resolve_ledger_address(self.config, self.chain_id)
        grants = DecryptionGrantManager(
            chain_id=self.chain_id,
            verifying_contract=self.decryption_verifier,
            duration_days=self.config.get_grant_duration_days(),
            store=grant_store,
            clock=self.clock,
        )
        return SleepGuardClient(
            ledger=self.ledger_at(ledger_address).connect(wallet.address),
            wallet=wallet,
            payload_builder=EncryptedPayloadBuilder(self.engine.public_key, self.chain_id),
            grants=grants,
            decryptor=BatchDecryptor(self.disclosure, clock=self.clock),
            events=events,
        )

    def ledger_at(self, address: str) -> SleepGuardLedger:
        if address.lower() != self.ledger.address:
            raise ConfigurationError(f"Ledger {address} is not deployed on local network {self.chain_id}")
        return self.ledger
