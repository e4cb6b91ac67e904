import os

from cryptography.fernet import Fernet

os.environ.setdefault("ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ.setdefault("SECRET_KEY", "test-secret")

import mongomock
import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from fastapi.testclient import TestClient

from evote import config, crud
from evote.blockchain import ChainError, get_chain
from evote.database import MongoConnector
from evote.main import app
from evote.security import login_message

TX_HASH = "0x" + "11" * 32


class FakeChain:
    """In-memory stand-in for ChainClient."""

    def __init__(self):
        self.fail = set()
        self.created_address = "0x" + "ab" * 20
        self.registered = []
        self.whitelisted = []
        self.sent = []
        self.ended = []
        self.votes = {}
        self.voted = set()
        self.receipt = None
        self.winner = {"address": "0x" + "22" * 20, "name": "Jane Smith", "votes": 3}

    def _check(self, name):
        if name in self.fail:
            raise ChainError(f"{name} failed")

    def create_election(self, name, description):
        self._check("create_election")
        return self.created_address

    def register_candidate(self, contract_address, candidate_address, name):
        self._check("register_candidate")
        self.registered.append((contract_address, candidate_address, name))
        return TX_HASH

    def whitelist_voters(self, contract_address, voters):
        self._check("whitelist_voters")
        self.whitelisted.append((contract_address, list(voters)))
        return TX_HASH

    def end_voting_and_declare_winner(self, contract_address):
        self._check("end_voting_and_declare_winner")
        self.ended.append(contract_address)
        return TX_HASH

    def get_winner(self, contract_address):
        self._check("get_winner")
        return dict(self.winner)

    def get_votes_by_address(self, contract_address, candidate_address):
        self._check("get_votes_by_address")
        return self.votes.get(candidate_address.lower(), 0)

    def has_voted(self, contract_address, voter_address):
        self._check("has_voted")
        return (contract_address.lower(), voter_address.lower()) in self.voted

    def build_vote_transaction(self, contract_address, candidate_address, voter_address):
        self._check("build_vote_transaction")
        return {"to": contract_address, "from": voter_address, "data": "0xdeadbeef", "nonce": 0}

    def relay_transaction(self, signed_transaction):
        self._check("relay_transaction")
        return self.receipt

    def send_eth(self, recipient_address, amount="0.001"):
        self._check("send_eth")
        self.sent.append((recipient_address, amount))
        return TX_HASH

    def get_election_results(self, contract_address):
        self._check("get_election_results")
        return {
            "contract_address": contract_address,
            "voting_active": True,
            "winner_declared": False,
            "winner": None,
            "candidates": [],
        }


@pytest.fixture
def db():
    connector = MongoConnector.reset(mongomock.MongoClient())
    yield connector
    MongoConnector._instance = None


@pytest.fixture
def chain():
    fake = FakeChain()
    app.dependency_overrides[get_chain] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_chain, None)


@pytest.fixture
def client(db, chain):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_account(monkeypatch):
    account = Account.create()
    monkeypatch.setattr(config, "ADMIN_ADDRESS", account.address)
    return account


def sign(account, message):
    signed = Account.sign_message(encode_defunct(text=message), private_key=account.key)
    return "0x" + bytes(signed.signature).hex()


@pytest.fixture
def admin_headers(client, admin_account):
    message = login_message()
    response = client.post(
        "/api/admin/login",
        json={"address": admin_account.address, "message": message, "signature": sign(admin_account, message)},
    )
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def registration(address, **overrides):
    data = {
        "wallet_address": address,
        "first_name": "Asha",
        "last_name": "Rao",
        "aadhar": "123412341234",
        "phone_number": "9999999999",
        "country": "India",
        "physical_address": "12 MG Road",
    }
    data.update(overrides)
    return data


def new_address():
    return Account.create().address


@pytest.fixture
def election(db):
    """An active election with a contract and two candidates."""
    created = crud.create_election("Student Council", "Annual vote", "0x" + "cd" * 20)
    crud.add_candidate(created["_id"], "John Doe", "0x" + "11" * 20)
    crud.add_candidate(created["_id"], "Jane Smith", "0x" + "22" * 20)
    return crud.get_election(created["_id"])


@pytest.fixture
def approved_voter(client, db, election):
    """Registers a voter and approves it for ``election`` directly in the mirror."""
    address = new_address()
    client.post("/api/voter/register", json=registration(address))
    voter = crud.get_voter_by_address(address)
    crud.apply_election_decision(voter, "approve", str(election["_id"]), election["contract_address"])
    return address
