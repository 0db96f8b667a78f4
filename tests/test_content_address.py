from __future__ import annotations

import hashlib

from peerbench.infrastructure.content_address import calculate_cid, calculate_sha256


def test_sha256_matches_hashlib_for_text_and_bytes() -> None:
    expected = hashlib.sha256("héllo".encode("utf-8")).hexdigest()
    assert calculate_sha256("héllo") == expected
    assert calculate_sha256("héllo".encode("utf-8")) == expected


def test_cid_of_empty_payload_is_the_well_known_raw_block_cid() -> None:
    assert calculate_cid(b"") == "bafkreihdwdcefgh4dqkjv67uzcmw7ojee6xedzdetojuzjevtenxquvyku"


def test_hashes_are_deterministic() -> None:
    payload = "The answer is B"
    assert calculate_sha256(payload) == calculate_sha256(payload)
    assert calculate_cid(payload) == calculate_cid(payload)


def test_single_byte_change_changes_both_hashes() -> None:
    assert calculate_sha256("The answer is B") != calculate_sha256("The answer is C")
    assert calculate_cid("The answer is B") != calculate_cid("The answer is C")


def test_cid_shape() -> None:
    cid = calculate_cid("payload")
    assert cid.startswith("bafkrei")
    assert cid == cid.lower()
    assert "=" not in cid
    # 1 multibase char + base32 of 36 bytes without padding
    assert len(cid) == 1 + 58
