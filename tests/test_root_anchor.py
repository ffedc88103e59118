"""Tests for the root anchor — admin gating, overwrite and write-once behavior."""

import pytest

from gunrelay.crypto.anchor import RootAnchor, RootPublisher, RootReader
from gunrelay.crypto.merkle import ZERO_HASH, relay_leaf
from gunrelay.errors import RootAlreadyPublished, Unauthorized

ADMIN = "0x" + "ad" * 20
OTHER = "0x" + "0b" * 20
ROOT_A = relay_leaf("0x" + "01" * 20, 1)
ROOT_B = relay_leaf("0x" + "02" * 20, 1)


class TestRootAnchor:
    def test_unset_epoch_reads_zero(self) -> None:
        anchor = RootAnchor(admin=ADMIN)
        assert anchor.roots(5) == ZERO_HASH
        assert anchor.root_timestamp(5) == 0
        assert anchor.get_epoch_id() == 0

    def test_publish_and_read(self) -> None:
        anchor = RootAnchor(admin=ADMIN, now=lambda: 1234.9)
        record = anchor.publish_root(5, ROOT_A, sender=ADMIN)
        assert anchor.roots(5) == ROOT_A
        assert anchor.root_timestamp(5) == 1234
        assert record.epoch == 5
        assert record.root_hex == "0x" + ROOT_A.hex()
        assert record.tx_hash is None

    def test_admin_address_case_insensitive(self) -> None:
        anchor = RootAnchor(admin=ADMIN)
        anchor.publish_root(1, ROOT_A, sender=ADMIN.upper().replace("0X", "0x"))
        assert anchor.roots(1) == ROOT_A

    def test_non_admin_rejected(self) -> None:
        anchor = RootAnchor(admin=ADMIN)
        with pytest.raises(Unauthorized):
            anchor.publish_root(1, ROOT_A, sender=OTHER)
        with pytest.raises(Unauthorized):
            anchor.publish_root(1, ROOT_A)
        assert anchor.roots(1) == ZERO_HASH

    def test_zero_root_rejected(self) -> None:
        anchor = RootAnchor(admin=ADMIN)
        with pytest.raises(ValueError):
            anchor.publish_root(1, ZERO_HASH, sender=ADMIN)
        with pytest.raises(ValueError):
            anchor.publish_root(1, b"\x01" * 31, sender=ADMIN)

    def test_overwrite_replaces_root(self) -> None:
        anchor = RootAnchor(admin=ADMIN)
        anchor.publish_root(1, ROOT_A, sender=ADMIN)
        anchor.publish_root(1, ROOT_B, sender=ADMIN)
        assert anchor.roots(1) == ROOT_B

    def test_write_once_refuses_different_root(self) -> None:
        anchor = RootAnchor(admin=ADMIN, write_once=True)
        anchor.publish_root(1, ROOT_A, sender=ADMIN)
        anchor.publish_root(1, ROOT_A, sender=ADMIN)
        with pytest.raises(RootAlreadyPublished):
            anchor.publish_root(1, ROOT_B, sender=ADMIN)
        assert anchor.roots(1) == ROOT_A

    def test_epoch_id_tracks_last_publish(self) -> None:
        anchor = RootAnchor(admin=ADMIN)
        anchor.publish_root(10, ROOT_A, sender=ADMIN)
        anchor.publish_root(3, ROOT_B, sender=ADMIN)
        assert anchor.get_epoch_id() == 3
        assert anchor.published_epochs() == [3, 10]

    def test_satisfies_protocols(self) -> None:
        anchor = RootAnchor(admin=ADMIN)
        assert isinstance(anchor, RootReader)
        assert isinstance(anchor, RootPublisher)
