"""
Unit tests for the metadata normalizer and chain helpers
"""

from datetime import datetime

import pytest

from core.exceptions import MalformedSource
from ingestion.transformers.chains import (
    art_blocks_project,
    detect_blockchain,
    has_generative_keyword,
    is_shared_contract,
    looks_like_generator,
    normalize_address,
    short_address,
)
from ingestion.transformers.normalizer import MetadataNormalizer
from models.base import DataSource
from schemas.sources import (
    MetadataUrlPayload,
    ObjktPayload,
    OffchainMetadata,
    OpenSeaPayload,
    RawNFT,
    TzktPayload,
)
from tests.helpers import GATEWAY, objkt_token, opensea_nft, tzkt_token


@pytest.fixture
def normalizer():
    return MetadataNormalizer(ipfs_gateway=GATEWAY)


def raw_from(payload, **identity) -> RawNFT:
    return RawNFT(source_name=DataSource(payload.source), payload=payload, **identity)


class TestChains:

    def test_detect_blockchain(self):
        assert detect_blockchain("0x" + "ab" * 20) == "ethereum"
        assert detect_blockchain("KT1RJ6PbjHpwc3M5rw5s2Nbmefwbuwbdxton") == "tezos"
        assert detect_blockchain("0x" + "ab" * 20, "polygon") == "polygon"
        assert detect_blockchain(None, "unknown") == "unknown"

    def test_normalize_address(self):
        assert normalize_address("0xABCdef") == "0xabcdef"
        assert normalize_address("tz1AbC", "tezos") == "tz1AbC"

    def test_short_address(self):
        assert short_address("0x1234567890abcdef") == "0x1234...cdef"
        assert short_address("short") == "short"

    def test_shared_contract(self):
        assert is_shared_contract("0x495f947276749Ce646f68AC8c248420045cb7b5e", "ethereum")
        assert not is_shared_contract("0x495f947276749Ce646f68AC8c248420045cb7b5e", "tezos")

    def test_generator_detection(self):
        assert looks_like_generator("ipfs://QmX/index.html")
        assert looks_like_generator("ipfs://QmX", "application/x-directory")
        assert not looks_like_generator("ipfs://QmX/img.png", "image/png")

    def test_generative_keywords(self):
        assert has_generative_keyword("Fidenza by Tyler Hobbs")
        assert not has_generative_keyword("Portraits")
        assert not has_generative_keyword("   ")

    def test_art_blocks_project(self):
        assert art_blocks_project("0xa7d8d9ef8D8Ce8992Df33D8b8CF4Aebabd5bD270", "78000123") == "78"
        assert art_blocks_project("0x" + "1" * 40, "78000123") is None


class TestOpenSea:

    def test_structured_fields(self, normalizer):
        payload = OpenSeaPayload.model_validate({**opensea_nft(), "chain": "ethereum"})
        artwork = normalizer.normalize(raw_from(payload))

        assert artwork.source_name == "opensea"
        assert artwork.blockchain == "ethereum"
        assert artwork.token_id == "7"
        assert artwork.token_standard == "ERC721"
        assert artwork.title == "Opensea Piece #7"
        assert artwork.image_url == GATEWAY + "QmOsImage/piece.png"
        assert artwork.attributes[0].trait_type == "Palette"
        assert artwork.creators[0].address == "0xaaaa000000000000000000000000000000000001"
        assert artwork.collection.slug == "glow-pieces"
        # updated_at is a metadata refresh time
        assert artwork.mint_date is None

    def test_mint_date_from_transfer_events(self, normalizer):
        payload = OpenSeaPayload.model_validate({
            **opensea_nft(updated_at="2025-06-01T00:00:00Z"),
            "chain": "ethereum",
            "mint_timestamp": 1600000000,
        })

        artwork = normalizer.normalize(raw_from(payload))

        assert artwork.mint_date == datetime(2020, 9, 13, 12, 26, 40)

    def test_polygon_chain(self, normalizer):
        payload = OpenSeaPayload.model_validate({**opensea_nft(), "chain": "matic"})
        assert normalizer.normalize(raw_from(payload)).blockchain == "polygon"

    def test_structured_wins_over_offchain(self, normalizer):
        payload = OpenSeaPayload.model_validate({**opensea_nft(description=""), "chain": "ethereum"})
        offchain = OffchainMetadata.model_validate({
            "name": "Offchain name",
            "description": "Offchain description",
            "image": "ipfs://QmOther/img.png",
        })
        artwork = normalizer.normalize(raw_from(payload), offchain)

        assert artwork.title == "Opensea Piece #7"
        assert artwork.image_url == GATEWAY + "QmOsImage/piece.png"
        # Empty structured field falls back to off-chain
        assert artwork.description == "Offchain description"


class TestTezos:

    def test_objkt_media_and_supply(self, normalizer):
        payload = ObjktPayload.model_validate(objkt_token())
        artwork = normalizer.normalize(raw_from(payload, blockchain="tezos"))

        assert artwork.blockchain == "tezos"
        assert artwork.token_standard == "FA2"
        assert artwork.image_url == GATEWAY + "QmDisplay"
        assert artwork.thumbnail_url == GATEWAY + "QmThumb"
        assert artwork.supply == 10
        assert artwork.attributes[0].trait_type == "Mood"
        assert artwork.creators[0].name == "calmartist"
        assert artwork.collection.title == "Calm Series"

    def test_objkt_generator(self, normalizer):
        payload = ObjktPayload.model_validate(objkt_token(
            artifact_uri="ipfs://QmGen/index.html", mime=None, display_uri=None,
        ))
        artwork = normalizer.normalize(raw_from(payload))

        assert artwork.is_generative
        assert artwork.generator_url == GATEWAY + "QmGen/index.html"
        assert artwork.image_url is None
        assert artwork.mime == "text/html"
        assert artwork.collection.is_generative

    def test_tzkt_dimensions_from_formats(self, normalizer):
        payload = TzktPayload.model_validate(tzkt_token())
        artwork = normalizer.normalize(raw_from(payload))

        assert artwork.dimensions.width == 640
        assert artwork.dimensions.height == 480
        assert artwork.mime == "image/png"
        assert artwork.features == {"tags": ["calm"]}
        assert artwork.creators[0].blockchain == "tezos"

    def test_tzkt_without_metadata(self, normalizer):
        payload = TzktPayload.model_validate(tzkt_token(metadata=None))
        artwork = normalizer.normalize(raw_from(payload))

        assert artwork.title == ""
        assert artwork.contract_address == "KT1TestContractAAAAAAAAAAAAAAAAAAAAA"


class TestMetadataUrl:

    def test_offchain_fills_everything(self, normalizer):
        payload = MetadataUrlPayload(contract_address="0xABC", token_id="42")
        offchain = OffchainMetadata.model_validate({
            "name": "Untitled Piece",
            "image": "ipfs://Qm456/img.png",
            "attributes": [{"trait_type": "Size", "value": 3}],
        })
        artwork = normalizer.normalize(
            raw_from(payload, contract_address="0xABC", token_id="42", metadata_url="ipfs://Qm123/meta.json"),
            offchain,
        )

        assert artwork.title == "Untitled Piece"
        assert artwork.image_url == GATEWAY + "Qm456/img.png"
        assert artwork.metadata_url == GATEWAY + "Qm123/meta.json"
        assert artwork.blockchain == "ethereum"
        assert artwork.attributes[0].value == "3"
        assert artwork.token_standard is None

    def test_video_artifact_becomes_animation(self, normalizer):
        payload = MetadataUrlPayload(contract_address="0xABC", token_id="1")
        offchain = OffchainMetadata.model_validate({
            "name": "Loop",
            "artifactUri": "ipfs://QmVideo",
            "displayUri": "ipfs://QmStill",
            "mimeType": "video/mp4",
        })
        artwork = normalizer.normalize(raw_from(payload, contract_address="0xABC", token_id="1"), offchain)

        assert artwork.animation_url == GATEWAY + "QmVideo"
        assert artwork.image_url == GATEWAY + "QmStill"
        assert artwork.primary_media_url == artwork.animation_url

    def test_offchain_artist_name(self, normalizer):
        payload = MetadataUrlPayload(title="Standalone")
        offchain = OffchainMetadata.model_validate({"created_by": "Jane Doe"})
        artwork = normalizer.normalize(raw_from(payload), offchain)

        assert artwork.creators[0].name == "Jane Doe"
        assert artwork.creators[0].address is None

    def test_missing_identity_is_malformed(self, normalizer):
        payload = MetadataUrlPayload()
        with pytest.raises(MalformedSource):
            normalizer.normalize(raw_from(payload, metadata_url="ipfs://QmNothing"))

    def test_title_only_is_enough(self, normalizer):
        artwork = normalizer.normalize(raw_from(MetadataUrlPayload(title="Sketch")))
        assert artwork.title == "Sketch"
        assert artwork.contract_address is None
