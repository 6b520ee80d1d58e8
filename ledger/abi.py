"""
ABI of the deployed SupplyChain contract.
"""
import json

_ABI_JSON = '''[
    {
        "inputs": [
            {"name": "name", "type": "string"},
            {"name": "description", "type": "string"}
        ],
        "name": "createProduct",
        "outputs": [{"name": "productId", "type": "uint256"}],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [
            {"name": "productId", "type": "uint256"},
            {"name": "status", "type": "uint8"}
        ],
        "name": "updateProductStatus",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [{"name": "productId", "type": "uint256"}],
        "name": "deleteProduct",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [{"name": "productId", "type": "uint256"}],
        "name": "getProduct",
        "outputs": [
            {"name": "status", "type": "uint8"},
            {"name": "timestamp", "type": "uint256"},
            {"name": "exists", "type": "bool"}
        ],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "anonymous": false,
        "inputs": [
            {"indexed": true, "name": "productId", "type": "uint256"},
            {"indexed": false, "name": "name", "type": "string"},
            {"indexed": false, "name": "timestamp", "type": "uint256"}
        ],
        "name": "ProductCreated",
        "type": "event"
    },
    {
        "anonymous": false,
        "inputs": [
            {"indexed": true, "name": "productId", "type": "uint256"},
            {"indexed": false, "name": "status", "type": "uint8"},
            {"indexed": false, "name": "timestamp", "type": "uint256"}
        ],
        "name": "StatusUpdated",
        "type": "event"
    },
    {
        "anonymous": false,
        "inputs": [
            {"indexed": true, "name": "productId", "type": "uint256"}
        ],
        "name": "ProductDeleted",
        "type": "event"
    }
]'''

SUPPLY_CHAIN_ABI = json.loads(_ABI_JSON)
