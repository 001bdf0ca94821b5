"""
Shared fixtures and in-memory chain doubles.

FakeSubstrate implements the SubstrateAPI surface the depositor uses, with scripted status streams,
block events and failures, so the scan, submission and orchestration logic run without a node.
"""
import asyncio
import pytest
from types import SimpleNamespace

from depositor.utils.config import NetworkConfig


def ongoing(track, deposit=False, deciding=False, who="1Submitter"):
    return {
        'Ongoing': {
            'track': track,
            'origin': {'Origins': 'SmallTipper'},
            'submission_deposit': {'who': who, 'amount': 10_000_000_000},
            'decision_deposit': {'who': '1Depositor', 'amount': 10_000_000_000} if deposit else None,
            'deciding': {'since': 100, 'confirming': None} if deciding else None,
        }
    }


def extrinsic_failed(dispatch_error):
    return {
        'module_id': 'System',
        'event_id': 'ExtrinsicFailed',
        'attributes': {'dispatch_error': dispatch_error, 'dispatch_info': {}},
    }


EXTRINSIC_SUCCESS = {'module_id': 'System', 'event_id': 'ExtrinsicSuccess', 'attributes': {'dispatch_info': {}}}


class FakeSubstrate:
    def __init__(self, entries=(), scripts=None, events=None, module_errors=None, build_errors=None,
                 submit_errors=None, events_error=None, hang=False, honour_release=True, chain_error=None):
        self.entries = list(entries)
        self.scripts = scripts or {}
        self.events = events or {}
        self.module_errors = module_errors or {}
        self.build_errors = build_errors or {}
        self.submit_errors = submit_errors or {}
        self.events_error = events_error
        self.hang = hang
        self.honour_release = honour_release
        self.chain_error = chain_error
        self.built = []
        self.submitted = []
        self.event_queries = []
        self.resets = 0
        self.closed = False
        self._reset = None

    # chain & account
    async def chain_info(self):
        if self.chain_error:
            raise self.chain_error
        return 'Polkadot', 'Parity Polkadot', '1.0.0'

    async def token_decimals(self):
        return 10

    async def keypair(self, seed):
        return SimpleNamespace(ss58_address='1Signer', public_key=b'\x01' * 32)

    @staticmethod
    def same_account(ss58_address, keypair):
        return ss58_address == keypair.ss58_address

    async def balance(self, ss58_address):
        return {'free': 50_000_000_000, 'reserved': 0}

    async def referendum_entries(self):
        return self.entries

    async def close(self):
        self.closed = True

    async def reset(self):
        self.resets += 1
        if self._reset is not None:
            self._reset.set()

    # extrinsics
    async def place_decision_deposit(self, index, keypair):
        if index in self.build_errors:
            raise self.build_errors[index]
        self.built.append(index)
        return SimpleNamespace(hash=f"0x{index:064x}", index=index)

    @staticmethod
    def extrinsic_hash(extrinsic):
        return extrinsic.hash

    async def watch_extrinsic(self, extrinsic, on_status):
        self.submitted.append(extrinsic.index)

        for result in self.scripts.get(extrinsic.index, []):
            await asyncio.sleep(0)
            if on_status(result) and self.honour_release:
                return {'subscription_id': 'sub'}

        if extrinsic.index in self.submit_errors:
            raise self.submit_errors[extrinsic.index]

        if self.hang:
            self._reset = asyncio.Event()
            await self._reset.wait()
            raise ConnectionError("Connection closed")

    async def extrinsic_events(self, block_hash, extrinsic_hash):
        self.event_queries.append((block_hash, extrinsic_hash))
        if self.events_error:
            raise self.events_error
        return self.events.get(block_hash, [EXTRINSIC_SUCCESS])

    def decode_module_error(self, module_error):
        return self.module_errors[(module_error['index'], module_error['error'])]


def make_network(key='polkadot', **overrides):
    settings = dict(
        key=key,
        name=key.capitalize(),
        wss=f"wss://{key}.example",
        seed='//Alice',
        ss58_address=None,
        track_ids=frozenset({30}),
        place_deposits=False,
        wait_for_finalization=False,
        submission_timeout=5,
        deposit_delay=0,
    )
    settings.update(overrides)
    return NetworkConfig(**settings)


@pytest.fixture
def network():
    return make_network()


@pytest.fixture
def keypair():
    return SimpleNamespace(ss58_address='1Signer', public_key=b'\x01' * 32)
