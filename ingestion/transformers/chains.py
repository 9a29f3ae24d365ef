"""
Blockchain and contract knowledge shared by the adapters and the normalizer.
"""

import re
from typing import Optional

from models.base import Blockchain

ETHEREUM_ADDRESS = re.compile(r"^0x[0-9a-fA-F]{40}$")
TEZOS_ADDRESS = re.compile(r"^(tz1|tz2|tz3|KT1)[1-9A-HJ-NP-Za-km-z]{33}$")

WRAPPED_TEZ_CONTRACT = "KT1PWx2mnDueood7fEmfbBDKx1D9BAnnXitn"

SHARED_CONTRACTS = {
    Blockchain.ETHEREUM.value: {
        "0x495f947276749ce646f68ac8c248420045cb7b5e",  # OpenSea Shared Storefront
        "0xa5409ec958c83c3f309868babaca7c86dcb077c1",  # OpenSea Collections
    },
    Blockchain.TEZOS.value: {
        "kt1rj6pbjhpwc3m5rw5s2nbmefwbuwbdxton",  # hic et nunc
        "kt1u6ehmnxjtkvawj4thczg4fsdahc21ssvi",  # fxhash
    },
}

GENERATIVE_CONTRACTS = {
    "kt1u6ehmnxjtkvawj4thczg4fsdahc21ssvi",  # fxhash v1
    "kt1kea8z6vwxdjrvqtmraedvzsvxat3khsce",  # fxhash v2
    "kt1aaabso5ae6eo8fpen5xhcd4w3khstafxk",  # fxhash gentk v1
    "kt1xcognfupwk7sp8536efrxcp73lmt68nyr",  # fxhash gentk v2
}

ART_BLOCKS_CONTRACTS = {
    "0x059edd72cd353df5106d2b9cc5ab83a52287ac3a": "art blocks legacy",
    "0xa7d8d9ef8d8ce8992df33d8b8cf4aebabd5bd270": "art blocks",
    "0x99a9b7c1116f9ceeb1652de04d5969cce509b069": "art blocks presents",
    "0x0e6a21cf97d6a9d9d8f794d26dfb3e3baa49f3ac": "art blocks presents_flex",
}

# Art Blocks token ids are project_id * 1_000_000 + edition
ART_BLOCKS_PROJECT_SPAN = 1_000_000

GENERATIVE_KEYWORDS = (
    "art blocks", "artblocks", "fxhash", "async art", "bright moments",
    "generative", "algorithmic", "procedural", "qql", "fidenza",
)

GENERATOR_URI_MARKERS = (".html", "generator", "fxhash.xyz", "interactive")
GENERATOR_MIME_TYPES = ("application/x-directory", "text/html")


def detect_blockchain(address: Optional[str], default: Optional[str] = None) -> Optional[str]:
    """Chain a wallet or contract address belongs to, judged by its format."""
    if not address:
        return default
    address = address.strip()
    if ETHEREUM_ADDRESS.match(address):
        return default if default and default != Blockchain.TEZOS.value else Blockchain.ETHEREUM.value
    if TEZOS_ADDRESS.match(address) or address.lower().startswith(("kt1", "kt2")):
        return Blockchain.TEZOS.value
    if address.lower().startswith("0x"):
        return Blockchain.ETHEREUM.value
    return default


def normalize_address(address: Optional[str], blockchain: Optional[str] = None) -> Optional[str]:
    """EVM addresses are case-insensitive and stored lowercase; Tezos addresses are case-sensitive."""
    if not address:
        return None
    address = address.strip()
    if blockchain == Blockchain.TEZOS.value or not address.lower().startswith("0x"):
        return address
    return address.lower()


def short_address(address: str) -> str:
    """``0x1234...abcd`` style label for artists without a display name."""
    if len(address) <= 12:
        return address
    return f"{address[:6]}...{address[-4:]}"


def generate_nft_uid(contract_address: str, token_id: str) -> str:
    return f"{contract_address.lower()}:{token_id}"


def is_shared_contract(contract_address: Optional[str], blockchain: Optional[str]) -> bool:
    if not contract_address or not blockchain:
        return False
    return contract_address.lower() in SHARED_CONTRACTS.get(blockchain, set())


def is_generative_contract(contract_address: Optional[str]) -> bool:
    if not contract_address:
        return False
    lowered = contract_address.lower()
    return lowered in GENERATIVE_CONTRACTS or lowered in ART_BLOCKS_CONTRACTS


def has_generative_keyword(name: Optional[str]) -> bool:
    if not name or not name.strip():
        return False
    lowered = name.lower()
    return any(keyword in lowered for keyword in GENERATIVE_KEYWORDS)


def looks_like_generator(uri: Optional[str], mime_type: Optional[str] = None) -> bool:
    """Artifact URIs pointing at interactive HTML rather than a static file."""
    if mime_type and mime_type.lower() in GENERATOR_MIME_TYPES:
        return True
    if not uri:
        return False
    lowered = uri.lower()
    return any(marker in lowered for marker in GENERATOR_URI_MARKERS)


def art_blocks_project(contract_address: Optional[str], token_id: Optional[str]) -> Optional[str]:
    """Art Blocks project id for a token, None for other contracts."""
    if not contract_address or contract_address.lower() not in ART_BLOCKS_CONTRACTS:
        return None
    try:
        return str(int(token_id) // ART_BLOCKS_PROJECT_SPAN)
    except (TypeError, ValueError):
        return None
