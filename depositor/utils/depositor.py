import asyncio
from depositor.utils.logger import Logger
from depositor.utils.models import DepositSummary, SubmissionOutcome
from depositor.utils.submission import SubmissionStateMachine, error_text


class DecisionDepositor:
    """
    Places decision deposits one referendum at a time from a single account.

    Submissions are never overlapped: each one runs to its outcome, then the driver waits the
    configured delay so the account nonce has advanced before the next extrinsic is signed.
    """

    def __init__(self, substrate, keypair, network, sleep=asyncio.sleep, state_machine=SubmissionStateMachine):
        self.substrate = substrate
        self.keypair = keypair
        self.network = network
        self.sleep = sleep
        self.state_machine = state_machine
        self.logger = Logger()

    async def place_deposits(self, tasks) -> DepositSummary:
        """
        Place a decision deposit for every task, or only report them when placement is disabled.

        Args:
            tasks (list): DepositTask objects in the order they should be submitted.

        Returns:
            DepositSummary: One outcome per task when executed, no outcomes in a dry run.
        """
        summary = DepositSummary(network=self.network.key, tasks=tuple(tasks), executed=self.network.place_deposits)

        if not self.network.place_deposits:
            self.report_dry_run(summary)
            return summary

        self.logger.info("Placing decision deposits...")
        self.logger.info(f"Account that will place deposits: {self.keypair.ss58_address}")

        for task in summary.tasks:
            summary.outcomes.append(await self.place_deposit(task))

            # Gives the account nonce time to advance before the next extrinsic is signed
            self.logger.info(f"Waiting {self.network.deposit_delay:g} seconds before next transaction...")
            await self.sleep(self.network.deposit_delay)

        self.report_results(summary)
        return summary

    async def place_deposit(self, task) -> SubmissionOutcome:
        self.logger.info(f"Placing deposit for referendum #{task.index}...")

        submission = self.state_machine(
            self.substrate,
            self.keypair,
            task,
            wait_for_finalization=self.network.wait_for_finalization,
            timeout=self.network.submission_timeout
        )

        try:
            return await submission.run()
        except Exception as error:
            self.logger.exception(f"Error processing referendum #{task.index}: {error}")
            return SubmissionOutcome(index=task.index, track=task.track, success=False, error=error_text(error))

    def report_dry_run(self, summary):
        self.logger.warning("PLACE_DEPOSITS is set to false. No deposits will be placed.")
        for task in summary.tasks:
            self.logger.info(f"Would place deposit for referendum #{task.index} (track {task.track})")
        self.logger.info(
            f"To place deposits automatically, set {self.network.key.upper()}_PLACE_DEPOSITS=true "
            f"or PLACE_DEPOSITS=true in your .env file or when running the script."
        )

    def report_results(self, summary):
        self.logger.info("--- DEPOSIT PLACEMENT RESULTS ---")
        self.logger.info(f"Total attempted: {summary.attempted}")
        self.logger.info(f"Successful: {len(summary.successful)}")
        self.logger.info(f"Failed: {len(summary.failed)}")

        if summary.failed:
            self.logger.info("Failed deposits:")
            for outcome in summary.failed:
                self.logger.info(f"- Referendum #{outcome.index}: {outcome.error or 'Unknown error'}")
