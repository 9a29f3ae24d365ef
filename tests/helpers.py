"""
Payload builders and a fake upstream shared by the test suites
"""

import io
import struct
import zlib
from typing import Callable, Dict, List, Tuple, Union

import httpx
from PIL import Image

GATEWAY = "https://ipfs.io/ipfs/"
OPENSEA = "https://api.opensea.io/api/v2"
OBJKT = "https://data.objkt.com/v3/graphql"
TZKT = "https://api.tzkt.io/v1"

Responder = Union[httpx.Response, Callable[[httpx.Request], httpx.Response], List[httpx.Response]]


# ============================================================================
# Payload builders
# ============================================================================

def make_png(width: int = 4, height: int = 3) -> bytes:
    """Minimal valid RGB PNG"""

    def chunk(kind: bytes, data: bytes) -> bytes:
        crc = zlib.crc32(kind + data) & 0xFFFFFFFF
        return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", crc)

    ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    rows = b"".join(b"\x00" + b"\x00\x00\x00" * width for _ in range(height))
    return (
        b"\x89PNG\r\n\x1a\n"
        + chunk(b"IHDR", ihdr)
        + chunk(b"IDAT", zlib.compress(rows))
        + chunk(b"IEND", b"")
    )


def make_image(width: int, height: int, fmt: str) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=(200, 30, 30)).save(buffer, format=fmt)
    return buffer.getvalue()


def opensea_nft(contract="0x1234567890abcdef1234567890abcdef12345678", identifier="7", **overrides) -> Dict:
    nft = {
        "identifier": identifier,
        "contract": contract,
        "token_standard": "erc721",
        "name": "Opensea Piece #7",
        "description": "A piece",
        "image_url": "ipfs://QmOsImage/piece.png",
        "metadata_url": None,
        "creator": "0xAAAA000000000000000000000000000000000001",
        "collection": "glow-pieces",
        "traits": [{"trait_type": "Palette", "value": "Warm"}],
        "updated_at": "2024-01-15T10:00:00Z",
    }
    nft.update(overrides)
    return nft


def objkt_token(contract="KT1TestContractAAAAAAAAAAAAAAAAAAAAA", token_id="5", creator="tz1CreatorAAAAAAAAAAAAAAAAAAAAAAAAAA", **overrides) -> Dict:
    token = {
        "token_id": token_id,
        "fa_contract": contract,
        "name": "Tezos Piece",
        "description": "From objkt",
        "artifact_uri": "ipfs://QmArtifact",
        "display_uri": "ipfs://QmDisplay",
        "thumbnail_uri": "ipfs://QmThumb",
        "mime": "image/png",
        "supply": "10",
        "metadata": None,
        "timestamp": "2023-05-01T12:00:00+00:00",
        "attributes": [{"attribute": {"name": "Mood", "value": "Calm"}}],
        "fa": {"contract": contract, "name": "Calm Series", "description": None, "website": None, "logo": None},
        "creators": [{"creator_address": creator, "holder": {"address": creator, "alias": "calmartist"}}],
    }
    token.update(overrides)
    return token


def tzkt_token(contract="KT1TestContractAAAAAAAAAAAAAAAAAAAAA", token_id="5", creator="tz1CreatorAAAAAAAAAAAAAAAAAAAAAAAAAA", **overrides) -> Dict:
    token = {
        "id": 1001,
        "tokenId": token_id,
        "contract": {"address": contract, "alias": "Calm Series"},
        "standard": "fa2",
        "firstTime": "2023-05-01T12:00:00Z",
        "totalSupply": "10",
        "metadata": {
            "name": "Tezos Piece",
            "description": "From tzkt",
            "artifactUri": "ipfs://QmArtifact",
            "displayUri": "ipfs://QmDisplay",
            "creators": [creator],
            "tags": ["calm"],
            "formats": [
                {"uri": "ipfs://QmArtifact", "mimeType": "image/png", "dimensions": {"value": "640x480", "unit": "px"}},
            ],
        },
    }
    token.update(overrides)
    return token


# ============================================================================
# Fake upstream
# ============================================================================

class FakeUpstream:
    """
    httpx MockTransport router keyed by (method, url without query).

    A responder is a Response, a list of Responses served in order (the
    last one repeats) or a callable taking the request.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Responder] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, url: str, responder: Responder):
        self.routes[(method.upper(), url)] = responder
        return self

    def get(self, url: str, responder: Responder):
        return self.add("GET", url, responder)

    def post(self, url: str, responder: Responder):
        return self.add("POST", url, responder)

    def calls(self, url: str) -> List[httpx.Request]:
        return [r for r in self.requests if str(r.url.copy_with(query=None)) == url]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, str(request.url.copy_with(query=None)))
        responder = self.routes.get(key)
        if responder is None:
            return httpx.Response(404, json={"detail": "not mocked"})
        if isinstance(responder, list):
            responder = responder.pop(0) if len(responder) > 1 else responder[0]
        elif callable(responder):
            return responder(request)
        # Responses are served more than once, hand out a fresh copy each time
        return httpx.Response(responder.status_code, headers=responder.headers, content=responder.content)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


