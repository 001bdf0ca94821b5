import asyncio
from depositor.utils.logger import Logger
from depositor.utils.models import QueryCapabilityError
from scalecodec.utils.ss58 import ss58_decode
from substrateinterface import SubstrateInterface, Keypair, ExtrinsicReceipt
from websocket import WebSocketException
from substrateinterface.exceptions import SubstrateRequestException, ConfigurationError


class SubstrateAPI:
    """
    Thin asynchronous adapter around SubstrateInterface for a single network.

    substrate-interface is blocking and its websocket is not safe to share between threads,
    so every call is pushed onto a worker thread while holding a per-connection lock.
    """

    def __init__(self, network, timeout=60):
        self.network = network
        self.timeout = timeout
        self.logger = Logger()
        self.substrate = None
        self._lock = asyncio.Lock()

    async def _connect(self):
        if not self.substrate:
            max_retries = 3
            wait_seconds = 10

            self.logger.info(f"Initializing RPC connection to {self.network.wss}")

            for attempt in range(1, max_retries + 1):
                try:
                    substrate = await asyncio.wait_for(
                        asyncio.to_thread(SubstrateInterface, url=self.network.wss),
                        timeout=self.timeout
                    )

                    await asyncio.wait_for(
                        asyncio.to_thread(substrate.init_runtime),
                        timeout=self.timeout
                    )

                    self.substrate = substrate
                    self.logger.info(f"Runtime successfully initialized: {self.substrate.runtime_version}")
                    return self.substrate
                except (WebSocketException, SubstrateRequestException, ConfigurationError, OSError) as e:
                    self.logger.error(f"Error during connection attempt {attempt}: {e}")
                    if attempt < max_retries:
                        self.logger.info(f"Retrying in {wait_seconds} seconds... (Attempt {attempt}/{max_retries})")
                        await asyncio.sleep(wait_seconds)
                    else:
                        self.logger.error("Max retries reached. Could not establish a connection.")
                        raise
                except asyncio.TimeoutError:
                    self.logger.error("Timeout while initializing Substrate connection.")
                    raise
        return self.substrate

    async def _run(self, func, *args, timeout=None, **kwargs):
        async with self._lock:
            return await asyncio.wait_for(
                asyncio.to_thread(func, *args, **kwargs),
                timeout=timeout or self.timeout
            )

    async def _disconnect(self):
        """Disconnects from the Substrate node."""
        if self.substrate:
            self.logger.info("Disconnecting from the node...")
            substrate, self.substrate = self.substrate, None
            substrate.close()

    async def close(self):
        """Manually close the connection when done with queries."""
        await self._disconnect()

    async def reset(self):
        """
        Drop the current connection without waiting for in-flight calls.

        Closing the websocket unblocks a worker thread that is still waiting on a subscription;
        the next call reconnects.
        """
        if self.substrate:
            self.logger.warning("Resetting connection to the node")
            substrate, self.substrate = self.substrate, None
            try:
                await asyncio.to_thread(substrate.close)
            except (WebSocketException, OSError) as error:
                self.logger.debug(f"Error while closing connection: {error}")

    # ----------------------
    # Chain & account
    # ----------------------
    async def chain_info(self):
        """
        Returns:
            tuple: (chain name, node name, node version)
        """
        await self._connect()

        responses = await asyncio.gather(*(
            self._run(self.substrate.rpc_request, method, [])
            for method in ('system_chain', 'system_name', 'system_version')
        ))
        return tuple(response.get('result') for response in responses)

    async def token_decimals(self) -> int:
        await self._connect()
        decimals = await self._run(lambda: self.substrate.token_decimals)
        if isinstance(decimals, (list, tuple)):
            decimals = decimals[0] if decimals else None
        return int(decimals or 0)

    async def keypair(self, seed: str) -> Keypair:
        """Derive the signing keypair from a secret URI (//Alice) or a mnemonic, with optional derivation path."""
        await self._connect()
        return await asyncio.to_thread(Keypair.create_from_uri, seed, ss58_format=self.substrate.ss58_format)

    @staticmethod
    def same_account(ss58_address: str, keypair: Keypair) -> bool:
        """Compare by public key so an address encoded with any SS58 prefix matches."""
        try:
            return ss58_decode(ss58_address) == keypair.public_key.hex()
        except ValueError:
            return False

    async def balance(self, ss58_address):
        """
        Query the balance of an account.

        Returns:
            dict: The raw 'free' and 'reserved' amounts, unscaled.
        """
        await self._connect()

        result = await self._run(
            self.substrate.query,
            module='System',
            storage_function='Account',
            params=[ss58_address]
        )

        data = result.value['data']
        return {'free': data['free'], 'reserved': data['reserved']}

    # ----------------------
    # Referenda
    # ----------------------
    async def referendum_entries(self, page_size=200):
        """
        Fetch every entry of Referenda.ReferendumInfoFor.

        Returns:
            list: (referendum index, decoded value) pairs in storage iteration order.

        Raises:
            QueryCapabilityError: If the runtime does not expose Referenda.ReferendumInfoFor.
        """
        await self._connect()

        storage_function = await self._run(
            self.substrate.get_metadata_storage_function,
            'Referenda',
            'ReferendumInfoFor'
        )
        if storage_function is None:
            raise QueryCapabilityError("Cannot find Referenda.ReferendumInfoFor storage function. API structure may have changed.")

        def entries():
            qmap = self.substrate.query_map(
                module='Referenda',
                storage_function='ReferendumInfoFor',
                params=[],
                page_size=page_size
            )
            return [(index.value, info.value) for index, info in qmap]

        # query_map pages lazily, so give the whole iteration a generous budget
        return await self._run(entries, timeout=self.timeout * 5)

    # ----------------------
    # Extrinsics
    # ----------------------
    async def place_decision_deposit(self, referendum_index: int, keypair: Keypair):
        """
        Compose and sign Referenda.place_decision_deposit for one referendum.

        Returns:
            GenericExtrinsic: The signed extrinsic, nonce taken from the account's current state.
        """
        await self._connect()

        call = await self._run(
            self.substrate.compose_call,
            call_module='Referenda',
            call_function='place_decision_deposit',
            call_params={'index': referendum_index}
        )
        return await self._run(self.substrate.create_signed_extrinsic, call=call, keypair=keypair)

    @staticmethod
    def extrinsic_hash(extrinsic) -> str:
        extrinsic_hash = extrinsic.extrinsic_hash
        if isinstance(extrinsic_hash, bytes):
            return f"0x{extrinsic_hash.hex()}"
        return str(extrinsic_hash)

    async def watch_extrinsic(self, extrinsic, on_status):
        """
        Submit an extrinsic and stream its status updates.

        Args:
            extrinsic (GenericExtrinsic): The signed extrinsic.
            on_status (callable): Called from the worker thread with every raw status notification.
                Returning True unwatches the extrinsic and ends the stream.

        Raises:
            SubstrateRequestException: If the node rejects the submission.
        """
        await self._connect()
        substrate = self.substrate

        def result_handler(message, update_nr, subscription_id):
            if 'params' not in message:
                return None

            if on_status(message['params']['result']):
                substrate.rpc_request('author_unwatchExtrinsic', [subscription_id])
                return {'subscription_id': subscription_id, 'updates': update_nr + 1}
            return None

        # No wait_for here, the caller bounds the whole submission
        async with self._lock:
            return await asyncio.to_thread(
                substrate.rpc_request,
                'author_submitAndWatchExtrinsic',
                [str(extrinsic.data)],
                result_handler=result_handler
            )

    async def extrinsic_events(self, block_hash: str, extrinsic_hash: str):
        """
        Returns:
            list: The events emitted by the extrinsic in the given block, as dicts with
            'module_id', 'event_id' and 'attributes'.
        """
        await self._connect()

        receipt = ExtrinsicReceipt(substrate=self.substrate, extrinsic_hash=extrinsic_hash, block_hash=block_hash)
        events = await self._run(lambda: receipt.triggered_events)
        return [event.value for event in events]

    def decode_module_error(self, module_error):
        """
        Resolve a DispatchError::Module into its pallet and error name using the runtime metadata.

        Args:
            module_error (dict | tuple): {'index': 20, 'error': '0x03000000'} or (20, 3).

        Returns:
            tuple: (pallet name, error name)
        """
        if isinstance(module_error, (tuple, list)):
            module_index, error_index = module_error
        else:
            module_index = module_error['index']
            error_index = module_error['error']

        if isinstance(error_index, str):
            # Newer runtimes encode the error as [u8; 4], the index is the first byte
            error_index = int(error_index[2:4], 16)

        metadata = self.substrate.metadata
        error = metadata.get_module_error(module_index=module_index, error_index=error_index)

        for pallet in metadata.pallets:
            if pallet.value['index'] == module_index:
                return pallet.value['name'], error.name

        raise ValueError(f"No pallet with index {module_index} in metadata")
