from depositor.utils.logger import Logger
from depositor.utils.models import DepositTask, ReferendumDecodeError, ReferendumRecord, parse_referendum_info


class OpenGovernance2:
    def __init__(self, substrate=None):
        self.substrate = substrate
        self.logger = Logger()

    @staticmethod
    def build_catalog(entries):
        """
        Turn raw ReferendumInfoFor entries into referendum records.

        Only Ongoing referenda become records; finished referenda and values that fail to decode are
        skipped, the latter with a warning, so a single bad entry never aborts the scan.

        Args:
            entries (iterable): (referendum index, decoded storage value) pairs.

        Returns:
            list: ReferendumRecord objects in the iteration order of the storage map.
        """
        records = []

        for key, value in entries:
            try:
                index = int(key)
                info = parse_referendum_info(value)
            except (ReferendumDecodeError, TypeError, ValueError) as error:
                Logger.warning(f"Error processing referendum at index {key}: {error}")
                continue

            if not info.is_ongoing:
                continue

            records.append(ReferendumRecord(
                index=index,
                track=info.track,
                is_ongoing=True,
                has_decision_deposit=bool(info.decision_deposit),
                submitted_by=info.submitted_by,
                in_deciding=bool(info.deciding)
            ))

        return records

    @staticmethod
    def needs_decision_deposit(records, track_ids):
        """
        Select the referenda on the target tracks that still lack a decision deposit.

        Args:
            records (iterable): ReferendumRecord objects, tracks already normalized to int.
            track_ids (set): Target track ids.

        Returns:
            list: DepositTask objects, input order preserved.
        """
        track_ids = set(track_ids)
        return [
            DepositTask(index=record.index, track=record.track, submitted_by=record.submitted_by)
            for record in records
            if record.is_ongoing and record.track in track_ids and not record.has_decision_deposit
        ]

    async def check_referendums(self, track_ids):
        """
        Scan the chain and work out which referenda need a decision deposit.

        Returns:
            tuple: (all ongoing referendum records, deposit tasks)
        """
        entries = await self.substrate.referendum_entries()
        self.logger.info(f"Total referenda found: {len(entries)}")

        records = self.build_catalog(entries)
        tasks = self.needs_decision_deposit(records, track_ids)

        self.logger.info("--- SUMMARY ---")
        self.logger.info(f"Total ongoing Referendums: {len(records)}")
        self.logger.info(f"Referendums on track(s) {self.format_tracks(track_ids)}: {len([r for r in records if r.track in track_ids])}")
        self.logger.info(f"Referendums without decision deposits (all tracks): {len([r for r in records if not r.has_decision_deposit])}")
        self.logger.info(f"Referendums without decision deposits: {len(tasks)}")

        for task in tasks:
            self.logger.info(f"Found target referendum #{task.index} without decision deposit")

        return records, tasks

    @staticmethod
    def format_tracks(track_ids):
        return ", ".join(str(track) for track in sorted(track_ids))
