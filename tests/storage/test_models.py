from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from sharebox.storage.models import (
    Exposure,
    Item,
    ItemInfo,
    Options,
    Share,
    public_share,
    public_shares,
)

NOW = datetime(2024, 9, 10, 12, 0, tzinfo=timezone.utc)


def _share_created_days_ago(days: int, validity: int) -> Share:
    return Share(
        name="test",
        owner="admin",
        date_created=NOW - timedelta(days=days),
        options=Options(validity=validity),
    )


class TestShareValidity:
    """Share expiry tests"""

    def test_within_validity(self):
        assert _share_created_days_ago(5, validity=10).is_valid(now=NOW)

    def test_past_validity(self):
        assert not _share_created_days_ago(12, validity=10).is_valid(now=NOW)

    def test_zero_validity_never_expires(self):
        assert _share_created_days_ago(5000, validity=0).is_valid(now=NOW)

    def test_expiry_boundary_is_exclusive(self):
        share = _share_created_days_ago(10, validity=10)
        assert share.expires_at() == NOW
        assert not share.is_valid(now=NOW)

    def test_naive_now_is_utc(self):
        share = _share_created_days_ago(5, validity=10)
        assert share.is_valid(now=NOW.replace(tzinfo=None))

    def test_defaults_to_current_time(self):
        share = Share(name="test", options=Options(validity=1))
        assert share.is_valid()
        assert share.date_created.tzinfo is not None


class TestOptions:
    """Share options tests"""

    def test_defaults(self):
        options = Options()
        assert options.validity == 0
        assert options.exposure == Exposure.UPLOAD
        assert options.description == ""
        assert options.message == ""

    def test_default_factory(self):
        assert Options.default(7) == Options(validity=7, exposure=Exposure.UPLOAD)

    def test_negative_validity_rejected(self):
        with pytest.raises(ValidationError):
            Options(validity=-1)

    def test_unknown_exposure_rejected(self):
        with pytest.raises(ValidationError):
            Options(exposure="everyone")

    @pytest.mark.parametrize(
        "exposure, upload, download",
        [
            (Exposure.UPLOAD, True, False),
            (Exposure.DOWNLOAD, False, True),
            (Exposure.BOTH, True, True),
        ],
    )
    def test_anonymous_access(self, exposure, upload, download):
        options = Options(exposure=exposure)
        assert options.allows_anonymous_upload is upload
        assert options.allows_anonymous_download is download


def test_public_share_hides_private_fields():
    share = Share(
        name="test",
        owner="admin",
        options=Options(validity=10, exposure=Exposure.BOTH, description="secret", message="hello"),
        size=100,
        count=3,
    )

    public = public_share(share)

    assert public.model_dump() == {
        "name": "test",
        "options": {"exposure": Exposure.BOTH, "message": "hello"},
    }


def test_public_shares_keeps_order():
    shares = [Share(name=name) for name in ("b", "a", "c")]
    assert [p.name for p in public_shares(shares)] == ["b", "a", "c"]


def test_item_name():
    item = Item(path="test/report.pdf", item_info=ItemInfo(size=1, date_modified=NOW))
    assert item.name == "report.pdf"
