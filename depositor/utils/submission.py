import asyncio
from enum import Enum
from depositor.utils.logger import Logger
from depositor.utils.models import StatusUpdate, SubmissionOutcome, TransactionStatus

# How long to wait for the status stream to unwind after an outcome has been decided
RELEASE_TIMEOUT = 5


class SubmissionState(Enum):
    PENDING = 'Pending'        # extrinsic not yet handed to the node
    WATCHING = 'Watching'      # submitted, consuming status updates
    INSPECTING = 'Inspecting'  # included, reading the block's events
    RESOLVED = 'Resolved'


class StreamClosed:
    """Queued when the status stream ends, carrying the watch future."""

    def __init__(self, future):
        self.future = future

    def describe(self):
        if self.future.cancelled():
            return "Status stream was cancelled"
        error = self.future.exception()
        if error is not None:
            return error_text(error)
        return "Status stream closed before a terminal status"


def error_text(error):
    return str(error) or error.__class__.__name__


def is_extrinsic_failed(event) -> bool:
    return event.get('module_id') == 'System' and event.get('event_id') == 'ExtrinsicFailed'


def dispatch_error_of(event):
    attributes = event.get('attributes')
    if isinstance(attributes, dict):
        return attributes.get('dispatch_error')
    if isinstance(attributes, (list, tuple)) and attributes:
        return attributes[0]
    return attributes


class SubmissionStateMachine:
    """
    Drives one Referenda.place_decision_deposit submission to exactly one SubmissionOutcome.

    Status notifications arrive on the chain client's worker thread and are handed to the event
    loop through a queue. The outcome is decided from the events emitted in the inclusion block,
    never from the submission call itself. Once resolved, the watch is released and any further
    notification is ignored.
    """

    def __init__(self, substrate, keypair, task, wait_for_finalization=False, timeout=300):
        self.substrate = substrate
        self.keypair = keypair
        self.task = task
        self.wait_for_finalization = wait_for_finalization
        self.timeout = timeout
        self.state = SubmissionState.PENDING
        self.statuses = []
        self.extrinsic_hash = None
        self.outcome = None

    def releases_on(self, update: StatusUpdate) -> bool:
        """Whether a status ends the watch. Evaluated on the worker thread as updates arrive."""
        status = update.status
        if status is TransactionStatus.FINALIZED or status.is_failure:
            return True
        return status is TransactionStatus.IN_BLOCK and not self.wait_for_finalization

    async def run(self) -> SubmissionOutcome:
        try:
            extrinsic = await self.substrate.place_decision_deposit(self.task.index, self.keypair)
            self.extrinsic_hash = self.substrate.extrinsic_hash(extrinsic)
        except Exception as error:
            return self.fail(error_text(error))

        loop = asyncio.get_running_loop()
        queue = asyncio.Queue()

        def on_status(result):
            try:
                update = StatusUpdate.from_rpc(result)
            except ValueError as error:
                Logger.warning(f"Ignoring status update: {error}")
                return False
            loop.call_soon_threadsafe(queue.put_nowait, update)
            return self.releases_on(update)

        self.state = SubmissionState.WATCHING
        watcher = asyncio.ensure_future(self.substrate.watch_extrinsic(extrinsic, on_status))
        watcher.add_done_callback(lambda future: queue.put_nowait(StreamClosed(future)))

        try:
            await asyncio.wait_for(self.consume(queue), timeout=self.timeout)
        except asyncio.TimeoutError:
            last_status = self.statuses[-1].status.value if self.statuses else 'none'
            self.fail(f"Submission timed out after {self.timeout:g}s (last status: {last_status})")
            await self.substrate.reset()
        finally:
            await self.release(watcher)

        return self.outcome

    async def consume(self, queue):
        while self.outcome is None:
            item = await queue.get()
            if isinstance(item, StreamClosed):
                self.fail(item.describe())
            else:
                await self.on_status(item)

    async def on_status(self, update: StatusUpdate):
        self.statuses.append(update)
        Logger.info(f"Current status: {update.status.value}")

        if self.outcome is not None:
            return

        status = update.status
        if status.is_inclusion:
            if status is TransactionStatus.FINALIZED or not self.wait_for_finalization:
                await self.inspect_block(update.block_hash)
            else:
                Logger.info(f"Included in block {update.block_hash}, waiting for finalization")
        elif status.is_failure:
            self.fail(f"Transaction failed with status: {status.value}")
        elif status is TransactionStatus.RETRACTED:
            Logger.warning(f"Block {update.value} was retracted, waiting for the extrinsic to be included again")

    async def inspect_block(self, block_hash):
        self.state = SubmissionState.INSPECTING

        try:
            events = await self.substrate.extrinsic_events(block_hash, self.extrinsic_hash)
        except Exception as error:
            return self.fail(f"Included in block {block_hash} but events could not be retrieved: {error_text(error)}")

        for event in events:
            if is_extrinsic_failed(event):
                return self.fail(self.describe_dispatch_error(dispatch_error_of(event)))

        return self.resolve(SubmissionOutcome(
            index=self.task.index,
            track=self.task.track,
            success=True,
            transaction_hash=self.extrinsic_hash,
            block_hash=block_hash
        ))

    def describe_dispatch_error(self, dispatch_error):
        if isinstance(dispatch_error, dict) and 'Module' in dispatch_error:
            try:
                section, name = self.substrate.decode_module_error(dispatch_error['Module'])
                return f"{section}.{name}"
            except Exception as error:
                Logger.debug(f"Unable to decode module error {dispatch_error}: {error}")
                return "Unknown error"
        return str(dispatch_error)

    def fail(self, message):
        return self.resolve(SubmissionOutcome(
            index=self.task.index,
            track=self.task.track,
            success=False,
            transaction_hash=self.extrinsic_hash,
            error=message
        ))

    def resolve(self, outcome):
        if self.outcome is not None:
            return self.outcome

        self.outcome = outcome
        self.state = SubmissionState.RESOLVED

        if outcome.success:
            Logger.info(f"✅ Successfully placed deposit for referendum #{outcome.index} in block {outcome.block_hash}")
        else:
            Logger.error(f"❌ Failed to place deposit for referendum #{outcome.index}: {outcome.error}")
        return outcome

    async def release(self, watcher):
        if not watcher.done():
            await asyncio.wait({watcher}, timeout=RELEASE_TIMEOUT)

        if not watcher.done():
            Logger.warning("Status stream did not close, resetting connection")
            await self.substrate.reset()
            return

        if not watcher.cancelled() and watcher.exception() is not None:
            Logger.debug(f"Status stream ended with: {error_text(watcher.exception())}")
