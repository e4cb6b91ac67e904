# Minimal ABIs for the election factory and the per-election voting contract

def _fn(name, inputs=(), outputs=(), mutability="nonpayable"):
    return {
        "inputs": [{"internalType": t, "name": n, "type": t} for n, t in inputs],
        "name": name,
        "outputs": [{"internalType": t, "name": n, "type": t} for n, t in outputs],
        "stateMutability": mutability,
        "type": "function",
    }


FACTORY_ABI = [
    _fn(
        "createElection",
        inputs=[("_electionName", "string"), ("_electionDescription", "string")],
        outputs=[("", "address")],
    ),
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "internalType": "address", "name": "contractAddress", "type": "address"},
            {"indexed": False, "internalType": "string", "name": "electionName", "type": "string"},
            {"indexed": False, "internalType": "string", "name": "electionDescription", "type": "string"},
            {"indexed": True, "internalType": "address", "name": "creator", "type": "address"},
        ],
        "name": "VotingContractCreated",
        "type": "event",
    },
    _fn("getDeployedElections", outputs=[("", "address[]")], mutability="view"),
    _fn("getElectionByName", inputs=[("_electionName", "string")], outputs=[("", "address")], mutability="view"),
]

VOTING_ABI = [
    _fn("registerCandidate", inputs=[("_candidateAddress", "address"), ("_name", "string")]),
    _fn("whitelistVoters", inputs=[("voters", "address[]")]),
    _fn("voteByAddress", inputs=[("_candidateAddress", "address")]),
    _fn("endVotingAndDeclareWinner"),
    _fn("getWinner", outputs=[("", "address"), ("", "string"), ("", "uint256")], mutability="view"),
    {
        "inputs": [],
        "name": "getAllCandidates",
        "outputs": [
            {
                "components": [
                    {"internalType": "address", "name": "candidateAddress", "type": "address"},
                    {"internalType": "string", "name": "name", "type": "string"},
                ],
                "internalType": "struct Voting.Candidate[]",
                "name": "",
                "type": "tuple[]",
            }
        ],
        "stateMutability": "view",
        "type": "function",
    },
    _fn("getVotesByAddress", inputs=[("_candidateAddress", "address")], outputs=[("", "uint256")], mutability="view"),
    _fn("whitelisted", inputs=[("", "address")], outputs=[("", "bool")], mutability="view"),
    _fn("hasVoted", inputs=[("", "address")], outputs=[("", "bool")], mutability="view"),
    _fn("votingActive", outputs=[("", "bool")], mutability="view"),
    _fn("winnerDeclared", outputs=[("", "bool")], mutability="view"),
]
