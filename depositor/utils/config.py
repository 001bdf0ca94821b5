from dotenv import load_dotenv
from dataclasses import dataclass
from typing import FrozenSet, Optional
from depositor.utils.models import parse_track
import os

# Networks the depositor knows how to reach out of the box.
NETWORKS = {
    'polkadot': {'name': 'Polkadot', 'wss': 'wss://rpc.polkadot.io'},
    'kusama': {'name': 'Kusama', 'wss': 'wss://kusama-rpc.polkadot.io'},
}

DEFAULT_SEED = '//Alice'
DEFAULT_TRACK_ID = '30'  # small tipper
DEFAULT_DEPOSIT_DELAY = 10
DEFAULT_SUBMISSION_TIMEOUT = 300

TRUE_VALUES = {'y', 'yes', 't', 'true', 'on', '1'}
FALSE_VALUES = {'n', 'no', 'f', 'false', 'off', '0'}


@dataclass(frozen=True)
class NetworkConfig:
    key: str
    name: str
    wss: str
    seed: str
    ss58_address: Optional[str]
    track_ids: FrozenSet[int]
    place_deposits: bool = False
    wait_for_finalization: bool = False
    submission_timeout: float = DEFAULT_SUBMISSION_TIMEOUT
    deposit_delay: float = DEFAULT_DEPOSIT_DELAY


class Config:
    def __init__(self, env_file=".env", networks=None):
        load_dotenv(env_file)

        # General Settings
        self.NETWORKS = self.parse_list(networks or os.getenv('NETWORKS') or ",".join(NETWORKS))
        self.LOG_LEVEL = int(os.getenv('LOG_LEVEL') or 3)
        self.LOG_DIR = os.getenv('LOG_DIR') or 'logs'

    def __getitem__(self, key):
        return getattr(self, key, None)

    def network(self, key) -> Optional[NetworkConfig]:
        """
        Build the settings for a single network.

        Every setting is first looked up with the network prefix (POLKADOT_TRACK_ID) and then
        falls back to the unprefixed variable (TRACK_ID) shared by all networks.

        Returns:
            NetworkConfig: The immutable settings, or None when the network is not known.

        Raises:
            ValueError: If one of the settings is malformed.
        """
        defaults = NETWORKS.get(key)
        if defaults is None:
            return None

        prefix = key.upper()

        def setting(name, default=None):
            return os.getenv(f"{prefix}_{name}") or os.getenv(name) or default

        return NetworkConfig(
            key=key,
            name=defaults['name'],
            wss=os.getenv(f"{prefix}_RPC_ENDPOINT") or defaults['wss'],
            seed=setting('ACCOUNT_SEED', DEFAULT_SEED),
            ss58_address=setting('SS58_ADDRESS'),
            track_ids=self.parse_tracks(setting('TRACK_ID', DEFAULT_TRACK_ID)),
            place_deposits=self.strtobool(setting('PLACE_DEPOSITS', 'false')),
            wait_for_finalization=self.strtobool(setting('WAIT_FOR_FINALIZATION', 'false')),
            submission_timeout=self.parse_seconds('SUBMISSION_TIMEOUT', setting('SUBMISSION_TIMEOUT', DEFAULT_SUBMISSION_TIMEOUT)),
            deposit_delay=self.parse_seconds('DEPOSIT_DELAY', setting('DEPOSIT_DELAY', DEFAULT_DEPOSIT_DELAY)),
        )

    @staticmethod
    def parse_list(value):
        return [item.strip().lower() for item in str(value).split(',') if item.strip()]

    @classmethod
    def parse_tracks(cls, value) -> FrozenSet[int]:
        try:
            tracks = frozenset(parse_track(track) for track in str(value).split(',') if track.strip())
        except ValueError:
            return cls.raise_error(f"Invalid TRACK_ID: {value}")
        return tracks or cls.raise_error("TRACK_ID must name at least one track")

    @classmethod
    def parse_seconds(cls, name, value) -> float:
        try:
            seconds = float(value)
        except (TypeError, ValueError):
            return cls.raise_error(f"Invalid {name}: {value}")
        return seconds if seconds >= 0 else cls.raise_error(f"{name} cannot be negative: {value}")

    @classmethod
    def strtobool(cls, value) -> bool:
        value = str(value).strip().lower()
        if value in TRUE_VALUES:
            return True
        if value in FALSE_VALUES:
            return False
        return cls.raise_error(f"Invalid truth value: {value}")

    @staticmethod
    def raise_error(msg):
        raise ValueError(msg)
