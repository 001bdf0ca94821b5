import sys
import asyncio
from depositor.utils.config import Config
from depositor.utils.logger import Logger
from depositor.utils.gov2 import OpenGovernance2
from depositor.utils.subquery import SubstrateAPI
from depositor.utils.depositor import DecisionDepositor
from depositor.utils.models import DepositSummary, QueryCapabilityError
from depositor.utils.argument_parser import ArgumentParser

logging = Logger()


async def run_network(network, substrate, depositor=DecisionDepositor):
    """
    Scan one network for referenda lacking a decision deposit and place (or report) the deposits.

    Args:
        network (NetworkConfig): The settings for this network.
        substrate (SubstrateAPI): A chain client for the network, connected lazily.
        depositor (type): Driver class used to place the deposits.

    Returns:
        DepositSummary: The tasks found and the outcome of each placed deposit.
    """
    chain, node_name, node_version = await substrate.chain_info()
    decimals = await substrate.token_decimals()
    keypair = await substrate.keypair(network.seed)

    logging.info("--- ACCOUNT ---")
    logging.info(f"Connected to chain: {chain} ({node_name} v{node_version})")
    logging.info(f"Signer address: {keypair.ss58_address}")

    if network.ss58_address and not substrate.same_account(network.ss58_address, keypair):
        logging.warning(f"⚠️ Warning: The address generated from the seed ({keypair.ss58_address}) doesn't match the provided SS58 address ({network.ss58_address})")

    balance = await substrate.balance(keypair.ss58_address)
    logging.info(f"Account balance: {balance['free'] / 10 ** decimals} (free), {balance['reserved'] / 10 ** decimals} (reserved)")
    logging.info(f"Using track ID(s): {OpenGovernance2.format_tracks(network.track_ids)}")

    logging.info("Getting all referenda...")
    opengov2 = OpenGovernance2(substrate)
    records, tasks = await opengov2.check_referendums(network.track_ids)

    if not tasks:
        logging.info("No referenda currently need decision deposits.")
        return DepositSummary(network=network.key, executed=network.place_deposits)

    logging.info("Referenda without decision deposits that need action:")
    for task in tasks:
        logging.info(f"- Referendum #{task.index}, Submitted by: {task.submitted_by}")

    logging.info("Referendum indices that need deposits (use this for batch operations):")
    logging.info(", ".join(str(task.index) for task in tasks))

    return await depositor(substrate, keypair, network).place_deposits(tasks)


async def process_network(network, log_dir="logs", api_factory=SubstrateAPI):
    """
    Run a single network end to end. Any failure is logged and contained so the next network still
    runs, and the connection is always closed.

    Returns:
        DepositSummary | None: The summary, or None when the run was aborted.
    """
    with Logger.network_log(network.key, log_dir):
        logging.info(f"==== PROCESSING {network.name.upper()} ====")
        logging.info(f"Connecting to {network.wss}...")

        substrate = api_factory(network)
        try:
            return await run_network(network, substrate)
        except QueryCapabilityError as error:
            logging.error(f"{network.name}: {error}")
        except Exception as error:
            logging.exception(f"Error in {network.name} run: {error}")
        finally:
            try:
                await substrate.close()
            except Exception as error:
                logging.error(f"Error while disconnecting from {network.name}: {error}")


async def run(config, api_factory=SubstrateAPI):
    """
    Process every configured network, strictly one after another.

    Returns:
        dict: network key -> DepositSummary (None for networks whose run was aborted).
    """
    summaries = {}

    for key in config.NETWORKS:
        try:
            network = config.network(key)
        except ValueError as error:
            logging.error(f"Invalid configuration for {key}: {error}")
            summaries[key] = None
            continue

        if network is None:
            logging.error(f"Unknown network: {key}")
            continue

        summaries[key] = await process_network(network, log_dir=config.LOG_DIR, api_factory=api_factory)

    return summaries


def main(argv=None):
    arguments = ArgumentParser(argv)
    args = arguments.args

    try:
        config = Config(env_file=args.env_file, networks=args.networks)
        if args.log_dir:
            config.LOG_DIR = args.log_dir

        logging.configure(log_level=4 if args.verbose else config.LOG_LEVEL, filename_prefix='decision-depositor', output_dir=config.LOG_DIR, days_to_keep=10)
        logging.info(f"Starting decision deposit placer for networks: {', '.join(config.NETWORKS)}")

        asyncio.run(run(config))

        logging.info("All networks processed. Exiting.")
        return 0
    except Exception as error:
        logging.exception(f"Fatal error: {error}")
        return 1


def cli():
    sys.exit(main())


if __name__ == '__main__':
    cli()
