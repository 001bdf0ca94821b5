from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


class DepositorError(Exception):
    """Base class for errors raised by the decision depositor."""


class ReferendumDecodeError(DepositorError):
    """A ReferendumInfoFor value could not be decoded into a known state."""


class QueryCapabilityError(DepositorError):
    """The connected runtime does not expose a storage item we depend on."""


# ----------------------
# Referendum state
# ----------------------
@dataclass(frozen=True)
class ReferendumInfo:
    """One decoded Referenda.ReferendumInfoFor value."""

    @property
    def is_ongoing(self) -> bool:
        return False


@dataclass(frozen=True)
class Ongoing(ReferendumInfo):
    track: int
    submitted_by: str = "unknown"
    decision_deposit: Optional[Any] = None
    deciding: Optional[Any] = None

    @property
    def is_ongoing(self) -> bool:
        return True


@dataclass(frozen=True)
class Approved(ReferendumInfo):
    pass


@dataclass(frozen=True)
class Rejected(ReferendumInfo):
    pass


@dataclass(frozen=True)
class Cancelled(ReferendumInfo):
    pass


@dataclass(frozen=True)
class TimedOut(ReferendumInfo):
    pass


@dataclass(frozen=True)
class Killed(ReferendumInfo):
    pass


FINISHED_STATES = {
    'Approved': Approved,
    'Rejected': Rejected,
    'Cancelled': Cancelled,
    'TimedOut': TimedOut,
    'Killed': Killed,
}


def _field(data: Dict[str, Any], *names):
    # substrate-interface yields snake_case keys, polkadot.js style dumps use camelCase
    for name in names:
        if name in data:
            return data[name]
    return None


def parse_track(track) -> int:
    """Normalize a track id (int, numeric string or '1,000' style human string) to int."""
    if isinstance(track, bool):
        raise ValueError(f"Invalid track id: {track!r}")
    if isinstance(track, int):
        return track
    return int(str(track).replace(',', '').strip())


def parse_referendum_info(value) -> ReferendumInfo:
    """
    Decode a ReferendumInfoFor storage value into one of the referendum state variants.

    Args:
        value (dict): The decoded storage value, a single-key mapping of the state name to its data.

    Returns:
        ReferendumInfo: Ongoing carries the fields we read, every other state is an empty marker.

    Raises:
        ReferendumDecodeError: If the value is not a recognised referendum state.
    """
    if not isinstance(value, dict) or len(value) != 1:
        raise ReferendumDecodeError(f"Unexpected referendum value: {value!r}")

    state, data = next(iter(value.items()))

    if state in FINISHED_STATES:
        return FINISHED_STATES[state]()

    if state != 'Ongoing':
        raise ReferendumDecodeError(f"Unknown referendum state: {state}")

    if not isinstance(data, dict):
        raise ReferendumDecodeError(f"Ongoing referendum has no status data: {data!r}")

    try:
        track = parse_track(data['track'])
    except (KeyError, TypeError, ValueError) as error:
        raise ReferendumDecodeError(f"Ongoing referendum has no valid track: {error}") from error

    submission_deposit = _field(data, 'submission_deposit', 'submissionDeposit') or {}
    submitted_by = submission_deposit.get('who') if isinstance(submission_deposit, dict) else None

    return Ongoing(
        track=track,
        submitted_by=submitted_by or "unknown",
        decision_deposit=_field(data, 'decision_deposit', 'decisionDeposit'),
        deciding=_field(data, 'deciding'),
    )


@dataclass(frozen=True)
class ReferendumRecord:
    index: int
    track: int
    is_ongoing: bool
    has_decision_deposit: bool
    submitted_by: str
    in_deciding: bool


@dataclass(frozen=True)
class DepositTask:
    index: int
    track: int
    submitted_by: str = "unknown"


# ----------------------
# Transaction status
# ----------------------
class TransactionStatus(Enum):
    FUTURE = 'Future'
    READY = 'Ready'
    BROADCAST = 'Broadcast'
    IN_BLOCK = 'InBlock'
    RETRACTED = 'Retracted'
    FINALITY_TIMEOUT = 'FinalityTimeout'
    FINALIZED = 'Finalized'
    USURPED = 'Usurped'
    DROPPED = 'Dropped'
    INVALID = 'Invalid'

    @property
    def is_inclusion(self) -> bool:
        return self in (TransactionStatus.IN_BLOCK, TransactionStatus.FINALIZED)

    @property
    def is_failure(self) -> bool:
        return self in (TransactionStatus.USURPED, TransactionStatus.DROPPED,
                        TransactionStatus.INVALID, TransactionStatus.FINALITY_TIMEOUT)


_RPC_STATUS_NAMES = {status.value.lower(): status for status in TransactionStatus}


@dataclass(frozen=True)
class StatusUpdate:
    status: TransactionStatus
    value: Any = None

    @classmethod
    def from_rpc(cls, result) -> 'StatusUpdate':
        """
        Parse one author_submitAndWatchExtrinsic notification.

        The node sends bare strings for value-less statuses ("ready", "dropped") and
        single-key objects for the rest ({"inBlock": "0x..."}, {"broadcast": [...]}).
        """
        if isinstance(result, str):
            name, value = result, None
        elif isinstance(result, dict) and len(result) == 1:
            name, value = next(iter(result.items()))
        else:
            raise ValueError(f"Unrecognised extrinsic status: {result!r}")

        try:
            return cls(status=_RPC_STATUS_NAMES[name.lower()], value=value)
        except KeyError:
            raise ValueError(f"Unrecognised extrinsic status: {name}") from None

    @property
    def block_hash(self) -> Optional[str]:
        return self.value if self.status.is_inclusion else None


@dataclass(frozen=True)
class SubmissionOutcome:
    index: int
    track: int
    success: bool
    transaction_hash: Optional[str] = None
    block_hash: Optional[str] = None
    error: Optional[str] = None


@dataclass
class DepositSummary:
    """Aggregate of one network's deposit run."""
    network: str
    tasks: Tuple[DepositTask, ...] = ()
    executed: bool = False
    outcomes: list = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.outcomes)

    @property
    def successful(self):
        return [outcome for outcome in self.outcomes if outcome.success]

    @property
    def failed(self):
        return [outcome for outcome in self.outcomes if not outcome.success]
