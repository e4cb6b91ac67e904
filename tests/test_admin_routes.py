from datetime import datetime, timedelta, timezone

from bson import ObjectId
from conftest import TX_HASH, new_address, registration, sign
from eth_account import Account

from evote import config, crud
from evote.security import hash_address, login_message

CONTRACT = "0x" + "cd" * 20


def test_login_rejects_non_admin_signer(client, admin_account):
    message = login_message()
    other = Account.create()
    response = client.post(
        "/api/admin/login",
        json={"address": other.address, "message": message, "signature": sign(other, message)},
    )
    assert response.status_code == 401

    response = client.post(
        "/api/admin/login",
        json={"address": new_address(), "message": message, "signature": sign(admin_account, message)},
    )
    assert response.status_code == 401


def test_login_rejects_garbage_signature(client, admin_account):
    response = client.post(
        "/api/admin/login",
        json={"address": admin_account.address, "message": login_message(), "signature": "0x1234"},
    )
    assert response.status_code == 401


def test_login_rejects_stale_message(client, admin_account):
    message = login_message(datetime.now(timezone.utc) - timedelta(hours=1))
    response = client.post(
        "/api/admin/login",
        json={"address": admin_account.address, "message": message, "signature": sign(admin_account, message)},
    )
    assert response.status_code == 401


def test_login_rejects_foreign_message(client, admin_account):
    message = "Approve transfer of 10 ETH"
    response = client.post(
        "/api/admin/login",
        json={"address": admin_account.address, "message": message, "signature": sign(admin_account, message)},
    )
    assert response.status_code == 401


def test_admin_routes_need_a_token(client):
    assert client.get("/api/admin/elections").status_code == 401
    response = client.get("/api/admin/elections", headers={"Authorization": "Bearer nonsense"})
    assert response.status_code == 401


def test_create_and_list_elections(client, admin_headers):
    response = client.post(
        "/api/admin/elections",
        json={"title": "Council", "description": "Annual vote", "contract_address": CONTRACT},
        headers=admin_headers,
    )
    assert response.status_code == 200
    election = response.json()["election"]
    assert election["contract_address"] == CONTRACT
    assert election["candidates"] == []
    assert election["is_active"] is True
    assert election["end_date"] > election["start_date"]

    listed = client.get("/api/admin/elections", headers=admin_headers).json()
    assert [e["title"] for e in listed] == ["Council"]


def test_create_election_deploys_contract(client, chain, admin_headers):
    response = client.post(
        "/api/admin/elections",
        json={"title": "Council", "description": "Annual vote", "deploy": True},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["election"]["contract_address"] == chain.created_address


def test_failed_deployment_creates_nothing(client, db, chain, admin_headers):
    chain.fail.add("create_election")
    response = client.post(
        "/api/admin/elections",
        json={"title": "Council", "description": "Annual vote", "deploy": True},
        headers=admin_headers,
    )
    assert response.status_code == 502
    assert db.elections.count_documents({}) == 0


def test_create_election_requires_title(client, admin_headers):
    response = client.post("/api/admin/elections", json={"description": "x"}, headers=admin_headers)
    assert response.status_code == 422


def test_election_status_update(client, election, admin_headers):
    url = f"/api/admin/elections/{election['_id']}/status"
    response = client.patch(url, json={"is_active": False}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["message"] == "Election status updated to inactive"
    assert crud.get_election(election["_id"])["is_active"] is False

    assert client.patch(url, json={"is_active": "no"}, headers=admin_headers).status_code == 422
    assert client.patch(
        f"/api/admin/elections/{ObjectId()}/status", json={"is_active": True}, headers=admin_headers
    ).status_code == 404
    assert client.patch(
        "/api/admin/elections/not-an-id/status", json={"is_active": True}, headers=admin_headers
    ).status_code == 400


def test_contract_address_update(client, election, admin_headers):
    url = f"/api/admin/elections/{election['_id']}/contract-address"
    assert client.patch(url, json={"contract_address": "0x1234"}, headers=admin_headers).status_code == 400

    new_contract = "0x" + "ef" * 20
    response = client.patch(url, json={"contract_address": new_contract}, headers=admin_headers)
    assert response.status_code == 200
    assert crud.get_election(election["_id"])["contract_address"] == new_contract


def test_add_candidate_registers_on_chain(client, chain, election, admin_headers):
    address = "0x" + "33" * 20
    response = client.post(
        f"/api/admin/elections/{election['_id']}/candidates",
        json={"name": "Mike Johnson", "address": address},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["transaction_hash"] == TX_HASH
    assert chain.registered == [(CONTRACT, address, "Mike Johnson")]
    names = [c["name"] for c in crud.get_election(election["_id"])["candidates"]]
    assert names == ["John Doe", "Jane Smith", "Mike Johnson"]


def test_duplicate_candidate_address(client, election, admin_headers):
    response = client.post(
        f"/api/admin/elections/{election['_id']}/candidates",
        json={"name": "John Again", "address": "0x" + "11" * 20},
        headers=admin_headers,
    )
    assert response.status_code == 400


def test_candidate_not_mirrored_when_chain_fails(client, chain, election, admin_headers):
    chain.fail.add("register_candidate")
    response = client.post(
        f"/api/admin/elections/{election['_id']}/candidates",
        json={"name": "Mike Johnson", "address": "0x" + "33" * 20},
        headers=admin_headers,
    )
    assert response.status_code == 502
    assert len(crud.get_election(election["_id"])["candidates"]) == 2


def test_candidate_for_missing_election(client, admin_headers):
    response = client.post(
        f"/api/admin/elections/{ObjectId()}/candidates",
        json={"name": "Mike", "address": "0x" + "33" * 20},
        headers=admin_headers,
    )
    assert response.status_code == 404


def test_set_candidate_votes(client, election, admin_headers):
    base = f"/api/admin/elections/{election['_id']}/candidates"
    response = client.patch(f"{base}/1/votes", json={"votes": 5}, headers=admin_headers)
    assert response.status_code == 200
    assert crud.get_election(election["_id"])["candidates"][1]["votes"] == 5

    assert client.patch(f"{base}/7/votes", json={"votes": 5}, headers=admin_headers).status_code == 404
    assert client.patch(f"{base}/-1/votes", json={"votes": 5}, headers=admin_headers).status_code == 400


def test_refresh_votes_reports_then_applies(client, chain, election, admin_headers):
    chain.votes = {"0x" + "22" * 20: 4}
    url = f"/api/admin/elections/{election['_id']}/refresh-votes"

    report = client.post(url, headers=admin_headers).json()
    assert report["in_sync"] is False
    assert report["applied"] is False
    assert [(c["name"], c["mirror_votes"], c["chain_votes"]) for c in report["candidates"]] == [
        ("John Doe", 0, 0),
        ("Jane Smith", 0, 4),
    ]
    assert crud.get_election(election["_id"])["candidates"][1]["votes"] == 0

    applied = client.post(url, params={"apply": "true"}, headers=admin_headers).json()
    assert applied["updated"] == [1]
    assert crud.get_election(election["_id"])["candidates"][1]["votes"] == 4

    again = client.post(url, headers=admin_headers).json()
    assert again["in_sync"] is True


def test_refresh_votes_chain_failure(client, chain, election, admin_headers):
    chain.fail.add("get_votes_by_address")
    url = f"/api/admin/elections/{election['_id']}/refresh-votes"
    assert client.post(url, headers=admin_headers).status_code == 502


def test_end_election_mirrors_winner(client, chain, election, admin_headers):
    response = client.post(f"/api/admin/elections/{election['_id']}/end", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["winner"]["name"] == "Jane Smith"
    stored = crud.get_election(election["_id"])
    assert stored["is_active"] is False
    assert stored["winner"]["votes"] == 3
    assert chain.ended == [CONTRACT]


def test_end_election_without_contract(client, db, admin_headers):
    created = crud.create_election("Draft", "No contract yet", None)
    response = client.post(f"/api/admin/elections/{created['_id']}/end", headers=admin_headers)
    assert response.status_code == 400


def test_voters_listing_masks_ciphertext(client, admin_headers):
    client.post("/api/voter/register", json=registration(new_address()))
    voters = client.get("/api/admin/voters", headers=admin_headers).json()
    assert len(voters) == 1
    encrypted = voters[0]["encrypted_address"]
    assert voters[0]["display_address"] == f"{encrypted[:6]}...{encrypted[-4:]}"


def pending_voter(client):
    address = new_address()
    client.post("/api/voter/register", json=registration(address))
    return address, crud.get_voter_by_address(address)


def test_approve_for_election_whitelists_and_funds(client, chain, election, admin_headers):
    address, voter = pending_voter(client)
    response = client.post(
        "/api/admin/voters/approve",
        json={
            "wallet_address": voter["encrypted_address"],
            "action": "approve",
            "election_id": str(election["_id"]),
            "election_contract_address": CONTRACT,
        },
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert chain.whitelisted == [(CONTRACT, [address.lower()])]
    assert chain.sent == [(address.lower(), config.GAS_AMOUNT_ETH)]

    stored = crud.get_voter_by_address(address)
    assert stored["status"] == "approved"
    assert stored["eth_tx_hash"] == TX_HASH
    approval = stored["election_approvals"][0]
    assert approval["election_id"] == str(election["_id"])
    assert approval["is_whitelisted"] is True
    assert approval["eth_tx_hash"] == TX_HASH


def test_approval_needs_election(client, chain, admin_headers):
    _, voter = pending_voter(client)
    response = client.post(
        "/api/admin/voters/approve",
        json={"wallet_address": voter["encrypted_address"], "action": "approve"},
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert chain.whitelisted == []


def test_approval_with_undecryptable_address(client, election, admin_headers):
    response = client.post(
        "/api/admin/voters/approve",
        json={
            "wallet_address": "garbage",
            "action": "approve",
            "election_id": str(election["_id"]),
            "election_contract_address": CONTRACT,
        },
        headers=admin_headers,
    )
    assert response.status_code == 500


def test_whitelist_failure_leaves_voter_pending(client, chain, election, admin_headers):
    address, voter = pending_voter(client)
    chain.fail.add("whitelist_voters")
    response = client.post(
        "/api/admin/voters/approve",
        json={
            "wallet_address": voter["encrypted_address"],
            "action": "approve",
            "election_id": str(election["_id"]),
            "election_contract_address": CONTRACT,
        },
        headers=admin_headers,
    )
    assert response.status_code == 502
    assert crud.get_voter_by_address(address)["status"] == "pending"


def test_gas_failure_keeps_approval(client, chain, election, admin_headers):
    address, voter = pending_voter(client)
    chain.fail.add("send_eth")
    response = client.post(
        "/api/admin/voters/approve",
        json={
            "wallet_address": voter["encrypted_address"],
            "action": "approve",
            "election_id": str(election["_id"]),
            "election_contract_address": CONTRACT,
        },
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["funding_transaction"] is None
    assert crud.get_voter_by_address(address)["status"] == "approved"


def test_reject_without_election(client, chain, admin_headers):
    address, voter = pending_voter(client)
    response = client.post(
        "/api/admin/voters/approve",
        json={"wallet_address": voter["encrypted_address"], "action": "reject"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert crud.get_voter_by_address(address)["status"] == "rejected"
    assert chain.whitelisted == []


def approve_body(voter, election_id, contract=CONTRACT, action="approve"):
    return {
        "wallet_address": voter["encrypted_address"],
        "action": action,
        "election_id": election_id,
        "election_contract_address": contract,
    }


def test_approval_for_malformed_election_touches_nothing(client, chain, election, admin_headers):
    address, voter = pending_voter(client)
    response = client.post("/api/admin/voters/approve", json=approve_body(voter, "not-an-id"), headers=admin_headers)
    assert response.status_code == 400
    assert chain.whitelisted == []
    assert chain.sent == []
    assert crud.get_voter_by_address(address).get("election_approvals") == []


def test_approval_for_unknown_election(client, chain, admin_headers):
    _, voter = pending_voter(client)
    response = client.post(
        "/api/admin/voters/approve", json=approve_body(voter, str(ObjectId())), headers=admin_headers
    )
    assert response.status_code == 404
    assert chain.whitelisted == []


def test_approval_with_contract_of_another_election(client, chain, election, admin_headers):
    _, voter = pending_voter(client)
    response = client.post(
        "/api/admin/voters/approve",
        json=approve_body(voter, str(election["_id"]), contract="0x" + "ef" * 20),
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert chain.whitelisted == []


def test_per_election_reject_keeps_voter_pending(client, chain, election, admin_headers):
    address, voter = pending_voter(client)
    response = client.post(
        "/api/admin/voters/approve",
        json=approve_body(voter, str(election["_id"]), action="reject"),
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert chain.whitelisted == []

    status = client.get("/api/voter/status", params={"address": address}).json()
    assert status["status"] == "pending"
    assert status["election_approvals"] == [{"election_id": str(election["_id"]), "status": "rejected"}]


def test_mirror_failure_after_whitelisting_is_reported(client, chain, election, admin_headers, monkeypatch):
    address, voter = pending_voter(client)

    def broken(*args, **kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(crud, "apply_election_decision", broken)
    response = client.post(
        "/api/admin/voters/approve", json=approve_body(voter, str(election["_id"])), headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["mirrored"] is False
    assert response.json()["whitelist_transaction"] == TX_HASH
    assert chain.whitelisted == [(CONTRACT, [address.lower()])]


def test_decision_failure_without_chain_write(client, chain, admin_headers, monkeypatch):
    _, voter = pending_voter(client)

    def broken(*args, **kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(crud, "apply_election_decision", broken)
    response = client.post(
        "/api/admin/voters/approve",
        json={"wallet_address": voter["encrypted_address"], "action": "reject"},
        headers=admin_headers,
    )
    assert response.status_code == 500


def test_unknown_action(client, admin_headers):
    _, voter = pending_voter(client)
    response = client.post(
        "/api/admin/voters/approve",
        json={"wallet_address": voter["encrypted_address"], "action": "ban"},
        headers=admin_headers,
    )
    assert response.status_code == 422


def test_send_gas(client, chain, admin_headers):
    address, voter = pending_voter(client)
    response = client.post(
        "/api/admin/send-gas", json={"voter_id": str(voter["_id"])}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["tx_hash"] == TX_HASH
    assert chain.sent == [(address.lower(), "0.01")]
    stored = crud.get_voter_by_address(address)
    assert stored["gas_sent"] is True
    assert stored["gas_amount"] == "0.01"


def test_send_gas_unknown_voter(client, admin_headers):
    response = client.post("/api/admin/send-gas", json={"voter_id": str(ObjectId())}, headers=admin_headers)
    assert response.status_code == 404
    response = client.post("/api/admin/send-gas", json={"voter_id": "nope"}, headers=admin_headers)
    assert response.status_code == 400


def test_seed_is_disabled_by_default(client, admin_headers, monkeypatch):
    monkeypatch.setattr(config, "ENABLE_SEED", False)
    assert client.post("/api/admin/seed", headers=admin_headers).status_code == 403


def test_seed_replaces_data(client, db, admin_headers, monkeypatch):
    monkeypatch.setattr(config, "ENABLE_SEED", True)
    client.post("/api/voter/register", json=registration(new_address()))
    response = client.post("/api/admin/seed", headers=admin_headers)
    assert response.status_code == 200
    assert db.voters.count_documents({}) == 3
    assert db.elections.count_documents({}) == 1
    seeded = db.voters.find_one({"hashed_address": hash_address("0xEc97ADF38aD8421cf8bdcaD2dA11883748b80839")})
    assert seeded["status"] == "approved"
