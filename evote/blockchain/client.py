import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Dict, List, Optional

from eth_account import Account
from web3 import Web3

from evote import config
from evote.blockchain.abi import FACTORY_ABI, VOTING_ABI
from evote.blockchain.receipts import extract_contract_address, new_deployments, to_plain

logger = logging.getLogger(__name__)


class ChainError(Exception):
    """A contract read/write or RPC connection failed."""


@contextmanager
def chain_call(label: str):
    try:
        yield
    except ChainError:
        raise
    except Exception as e:
        logger.error(f"Error {label}: {e}")
        raise ChainError(f"Error {label}: {e}") from e


def connect(rpc_urls: List[str]) -> Web3:
    """Return a Web3 bound to the first endpoint that answers."""
    for url in rpc_urls:
        try:
            w3 = Web3(Web3.HTTPProvider(url, request_kwargs={"timeout": 10}))
            if w3.is_connected():
                logger.info(f"Connected to RPC endpoint {url}")
                return w3
            logger.warning(f"RPC endpoint {url} is not reachable")
        except Exception as e:
            logger.warning(f"RPC endpoint {url} failed: {e}")
    raise ChainError(f"No RPC endpoint reachable (tried {len(rpc_urls)})")


class ChainClient:
    """
    Caller side of the election factory and voting contracts.

    Admin writes are signed locally with ``ADMIN_PRIVATE_KEY``; voter votes are
    signed in the voter's wallet and only relayed from here.
    """

    def __init__(
        self,
        w3: Optional[Web3] = None,
        rpc_urls: Optional[List[str]] = None,
        factory_address: Optional[str] = None,
        private_key: Optional[str] = None,
        receipt_timeout: Optional[int] = None,
    ):
        self._w3 = w3
        self.rpc_urls = rpc_urls or config.RPC_URLS
        self.factory_address = factory_address or config.FACTORY_ADDRESS
        self.private_key = private_key if private_key is not None else config.ADMIN_PRIVATE_KEY
        self.receipt_timeout = receipt_timeout or config.RECEIPT_TIMEOUT

    @property
    def w3(self) -> Web3:
        if self._w3 is None:
            self._w3 = connect(self.rpc_urls)
        return self._w3

    @property
    def account(self):
        if not self.private_key:
            raise ChainError("ADMIN_PRIVATE_KEY is not configured")
        return Account.from_key(self.private_key)

    def factory(self):
        return self.w3.eth.contract(address=Web3.to_checksum_address(self.factory_address), abi=FACTORY_ABI)

    def voting(self, contract_address: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(contract_address), abi=VOTING_ABI)

    # --- Transactions ---

    def _send_signed(self, tx: Dict[str, Any]) -> str:
        signed = self.account.sign_transaction(tx)
        tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        return Web3.to_hex(tx_hash)

    def wait_for_receipt(self, tx_hash: str):
        receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        if receipt["status"] != 1:
            raise ChainError(f"Transaction {tx_hash} failed or was reverted")
        return receipt

    def _transact(self, fn) -> Any:
        acct = self.account
        tx = fn.build_transaction({
            "from": acct.address,
            "nonce": self.w3.eth.get_transaction_count(acct.address, "pending"),
        })
        tx_hash = self._send_signed(tx)
        logger.info(f"Transaction hash: {tx_hash}")
        return self.wait_for_receipt(tx_hash)

    # --- Factory ---

    def get_deployed_elections(self) -> List[str]:
        with chain_call("getting deployed elections"):
            return list(self.factory().functions.getDeployedElections().call())

    def get_election_by_name(self, name: str) -> str:
        with chain_call("getting election by name"):
            return self.factory().functions.getElectionByName(name).call()

    def create_election(self, name: str, description: str) -> str:
        """Deploy a voting contract through the factory and return its address."""
        logger.info(f"Creating election with params: name={name!r}")
        try:
            before = self.get_deployed_elections()
        except ChainError as e:
            logger.warning(f"Deployment list unavailable, address diff fallback disabled: {e}")
            before = None
        with chain_call("creating election"):
            receipt = self._transact(self.factory().functions.createElection(name, description))

        address = extract_contract_address(receipt, self.factory_address)
        if address:
            return Web3.to_checksum_address(address)

        if before is not None:
            created = new_deployments(before, self.get_deployed_elections())
            if len(created) == 1:
                logger.info(f"Found new election at: {created[0]}")
                return created[0]

        tx_hash = Web3.to_hex(receipt["transactionHash"])
        raise ChainError(
            f"Could not determine the created contract address for transaction {tx_hash}. "
            "The transaction succeeded; set the contract address manually."
        )

    # --- Election contract writes ---

    def register_candidate(self, contract_address: str, candidate_address: str, name: str) -> str:
        with chain_call("registering candidate"):
            fn = self.voting(contract_address).functions.registerCandidate(
                Web3.to_checksum_address(candidate_address), name
            )
            return Web3.to_hex(self._transact(fn)["transactionHash"])

    def whitelist_voters(self, contract_address: str, voters: List[str]) -> str:
        with chain_call("whitelisting voters"):
            fn = self.voting(contract_address).functions.whitelistVoters(
                [Web3.to_checksum_address(v) for v in voters]
            )
            return Web3.to_hex(self._transact(fn)["transactionHash"])

    def end_voting_and_declare_winner(self, contract_address: str) -> str:
        with chain_call("ending voting"):
            fn = self.voting(contract_address).functions.endVotingAndDeclareWinner()
            return Web3.to_hex(self._transact(fn)["transactionHash"])

    def build_vote_transaction(self, contract_address: str, candidate_address: str, voter_address: str) -> Dict[str, Any]:
        """Unsigned ``voteByAddress`` transaction for the voter's wallet to sign."""
        with chain_call("building vote transaction"):
            voter = Web3.to_checksum_address(voter_address)
            tx = self.voting(contract_address).functions.voteByAddress(
                Web3.to_checksum_address(candidate_address)
            ).build_transaction({
                "from": voter,
                "nonce": self.w3.eth.get_transaction_count(voter, "pending"),
            })
            return to_plain(tx)

    def relay_transaction(self, signed_transaction: str) -> Dict[str, Any]:
        """Broadcast a wallet-signed transaction and wait until it is mined."""
        with chain_call("relaying transaction"):
            tx_hash = Web3.to_hex(self.w3.eth.send_raw_transaction(signed_transaction))
            logger.info(f"Vote transaction submitted! Hash: {tx_hash}")
            return to_plain(self.wait_for_receipt(tx_hash))

    def send_eth(self, recipient_address: str, amount: str = config.GAS_AMOUNT_ETH) -> str:
        """Fund a voter wallet from the admin account so it can pay for gas."""
        with chain_call("sending ETH"):
            acct = self.account
            tx = {
                "to": Web3.to_checksum_address(recipient_address),
                "value": self.w3.to_wei(Decimal(amount), "ether"),
                "from": acct.address,
                "nonce": self.w3.eth.get_transaction_count(acct.address, "pending"),
                "gas": 21000,
                "gasPrice": self.w3.eth.gas_price,
                "chainId": self.w3.eth.chain_id,
            }
            tx_hash = self._send_signed(tx)
            logger.info(f"ETH sent to {recipient_address}, tx: {tx_hash}")
            return tx_hash

    # --- Election contract reads ---

    def get_winner(self, contract_address: str) -> Dict[str, Any]:
        with chain_call("getting winner"):
            address, name, votes = self.voting(contract_address).functions.getWinner().call()
            return {"address": address, "name": name, "votes": int(votes)}

    def get_all_candidates(self, contract_address: str) -> List[Dict[str, str]]:
        with chain_call("getting candidates"):
            result = self.voting(contract_address).functions.getAllCandidates().call()
            return [{"address": c[0], "name": c[1]} for c in result]

    def get_votes_by_address(self, contract_address: str, candidate_address: str) -> int:
        try:
            with chain_call("getting votes for candidate"):
                votes = self.voting(contract_address).functions.getVotesByAddress(
                    Web3.to_checksum_address(candidate_address)
                ).call()
                return int(votes)
        except ChainError:
            logger.info("Attempting fallback - getting all candidates first")

        # The direct call rejects addresses the contract does not know
        for candidate in self.get_all_candidates(contract_address):
            if candidate["address"].lower() == candidate_address.lower():
                with chain_call("getting votes for candidate (fallback)"):
                    return int(
                        self.voting(contract_address).functions.getVotesByAddress(candidate["address"]).call()
                    )
        logger.info(f"Candidate {candidate_address} not found in contract, returning 0 votes")
        return 0

    def is_whitelisted(self, contract_address: str, voter_address: str) -> bool:
        with chain_call("checking whitelist status"):
            return bool(self.voting(contract_address).functions.whitelisted(
                Web3.to_checksum_address(voter_address)
            ).call())

    def has_voted(self, contract_address: str, voter_address: str) -> bool:
        with chain_call("checking vote status"):
            return bool(self.voting(contract_address).functions.hasVoted(
                Web3.to_checksum_address(voter_address)
            ).call())

    def is_voting_active(self, contract_address: str) -> bool:
        with chain_call("checking voting status"):
            return bool(self.voting(contract_address).functions.votingActive().call())

    def is_winner_declared(self, contract_address: str) -> bool:
        with chain_call("checking winner status"):
            return bool(self.voting(contract_address).functions.winnerDeclared().call())

    def get_election_results(self, contract_address: str) -> Dict[str, Any]:
        winner_declared = self.is_winner_declared(contract_address)
        candidates = [
            dict(c, votes=self.get_votes_by_address(contract_address, c["address"]))
            for c in self.get_all_candidates(contract_address)
        ]
        return {
            "contract_address": contract_address,
            "voting_active": self.is_voting_active(contract_address),
            "winner_declared": winner_declared,
            "winner": self.get_winner(contract_address) if winner_declared else None,
            "candidates": candidates,
        }
