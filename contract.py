import json

# Only the mint entry point is needed; the rest of the ERC721 surface is unused.
MINT_ABI = [
    {
        "inputs": [
            {
                "internalType": "address",
                "name": "to",
                "type": "address"
            },
            {
                "internalType": "string",
                "name": "tokenURI",
                "type": "string"
            }
        ],
        "name": "mint",
        "outputs": [
            {
                "internalType": "uint256",
                "name": "",
                "type": "uint256"
            }
        ],
        "stateMutability": "nonpayable",
        "type": "function"
    }
]


def load_abi(path=None):
    """Load a contract ABI from a compiler artifact or a bare ABI list.

    Falls back to MINT_ABI when no path is given.
    """
    if not path:
        return MINT_ABI
    with open(path, 'r') as f:
        contract_json = json.load(f)
    if isinstance(contract_json, dict):
        return contract_json['abi']
    return contract_json
