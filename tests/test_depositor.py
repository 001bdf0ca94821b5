import asyncio

from depositor.utils.depositor import DecisionDepositor
from depositor.utils.models import DepositTask, SubmissionOutcome
from conftest import FakeSubstrate, extrinsic_failed, make_network

TASKS = [DepositTask(index=1, track=30), DepositTask(index=2, track=30), DepositTask(index=3, track=30)]


class VirtualClock:
    """Records every sleep and lets submissions take virtual time."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    async def sleep(self, seconds):
        self.sleeps.append((self.now, seconds))
        self.now += seconds


class TimedStateMachine:
    """Stands in for SubmissionStateMachine, recording when each submission started and resolved."""

    clock = None
    timeline = []
    failing = set()

    def __init__(self, substrate, keypair, task, wait_for_finalization=False, timeout=300):
        self.task = task

    async def run(self):
        started = self.clock.now
        await asyncio.sleep(0)
        self.clock.now += 2.5
        self.timeline.append((self.task.index, started, self.clock.now))
        if self.task.index in self.failing:
            raise RuntimeError("boom")
        return SubmissionOutcome(index=self.task.index, track=self.task.track, success=True, block_hash="0xb")


def timed_depositor(network, clock, keypair, failing=()):
    TimedStateMachine.clock = clock
    TimedStateMachine.timeline = []
    TimedStateMachine.failing = set(failing)
    return DecisionDepositor(FakeSubstrate(), keypair, network, sleep=clock.sleep, state_machine=TimedStateMachine)


class TestSequencing:
    def test_delay_after_every_submission(self, keypair):
        clock = VirtualClock()
        network = make_network(place_deposits=True, deposit_delay=10)

        summary = asyncio.run(timed_depositor(network, clock, keypair).place_deposits(TASKS))

        timeline = TimedStateMachine.timeline
        assert [index for index, _, _ in timeline] == [1, 2, 3]
        for (_, _, resolved), (_, next_started, _) in zip(timeline, timeline[1:]):
            assert next_started >= resolved + 10
        assert [seconds for _, seconds in clock.sleeps] == [10, 10, 10]
        assert summary.attempted == 3

    def test_failure_does_not_stop_the_run(self, keypair):
        clock = VirtualClock()
        network = make_network(place_deposits=True, deposit_delay=10)

        summary = asyncio.run(timed_depositor(network, clock, keypair, failing={2}).place_deposits(TASKS))

        assert [o.index for o in summary.outcomes] == [1, 2, 3]
        assert [o.success for o in summary.outcomes] == [True, False, True]
        assert summary.failed[0].error == "boom"
        assert len(clock.sleeps) == 3


class TestWithChain:
    def test_one_outcome_per_task(self, keypair):
        substrate = FakeSubstrate(
            scripts={
                1: ["ready", {"inBlock": "0x01"}],
                2: [{"broadcast": []}, {"inBlock": "0x02"}],
                3: ["ready", "invalid"],
            },
            events={"0x02": [extrinsic_failed({'Module': {'index': 21, 'error': '0x0d000000'}})]},
            module_errors={(21, '0x0d000000'): ('Referenda', 'HasDeposit')},
        )
        clock = VirtualClock()
        depositor = DecisionDepositor(substrate, keypair, make_network(place_deposits=True, deposit_delay=10), sleep=clock.sleep)

        summary = asyncio.run(depositor.place_deposits(TASKS))

        assert substrate.submitted == [1, 2, 3]
        assert [o.index for o in summary.outcomes] == [1, 2, 3]
        assert [o.index for o in summary.successful] == [1]
        assert [o.error for o in summary.failed] == ["Referenda.HasDeposit", "Transaction failed with status: Invalid"]
        assert len(clock.sleeps) == 3

    def test_dry_run_submits_nothing(self, keypair):
        substrate = FakeSubstrate(scripts={1: [{"inBlock": "0x01"}]})
        clock = VirtualClock()
        depositor = DecisionDepositor(substrate, keypair, make_network(place_deposits=False), sleep=clock.sleep)

        summary = asyncio.run(depositor.place_deposits(TASKS))

        assert not summary.executed
        assert summary.tasks == tuple(TASKS)
        assert summary.outcomes == []
        assert substrate.built == []
        assert substrate.submitted == []
        assert clock.sleeps == []

    def test_results_are_reported(self, keypair, caplog):
        substrate = FakeSubstrate(scripts={1: ["dropped"]})
        depositor = DecisionDepositor(substrate, keypair, make_network(place_deposits=True), sleep=VirtualClock().sleep)

        with caplog.at_level("INFO"):
            asyncio.run(depositor.place_deposits(TASKS[:1]))

        assert "Total attempted: 1" in caplog.text
        assert "- Referendum #1: Transaction failed with status: Dropped" in caplog.text
