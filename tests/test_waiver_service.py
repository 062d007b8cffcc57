"""Waiver service — issuance, validity boundary, lookup and sweeping."""

from datetime import timedelta

import pytest

from qagate.core.exceptions import NotFoundError, ValidationError, WaiverExpiredError
from qagate.models.release import Waiver
from qagate.services import release_service, waiver_service as svc

from .conftest import NOW


@pytest.fixture()
def release(project):
    return release_service.create_release(project.id, "R-2026.10")


def _issue(release, target_type="OTHER", days=30, target_id=None, now=NOW, reason="Known gap"):
    return svc.issue_waiver(
        release.id, target_type, reason, now + timedelta(days=days), "qa-lead",
        target_id=target_id, now=now,
    )


# ═════════════════════════════════════════════════════════════════════════════
# Issuance
# ═════════════════════════════════════════════════════════════════════════════


class TestIssueWaiver:

    def test_issue(self, release):
        waiver = _issue(release)
        assert waiver.id is not None
        assert waiver.target_type == "OTHER"
        assert waiver.target_id is None
        d = waiver.to_dict()
        assert d["expires_at"].startswith("2026-11-18T12:00:00")
        assert d["issuer_id"] == "qa-lead"

    def test_unknown_release(self):
        with pytest.raises(NotFoundError):
            svc.issue_waiver(999, "OTHER", "x", NOW + timedelta(days=1), "qa-lead", now=NOW)

    def test_unknown_target_type(self, release):
        with pytest.raises(ValidationError) as exc:
            _issue(release, target_type="ANYTHING")
        assert "target_type" in exc.value.details

    def test_blank_reason(self, release):
        with pytest.raises(ValidationError) as exc:
            _issue(release, reason="   ")
        assert "reason" in exc.value.details

    @pytest.mark.parametrize("offset", [timedelta(0), timedelta(seconds=-1)])
    def test_expiry_must_be_in_future(self, release, offset):
        with pytest.raises(ValidationError) as exc:
            svc.issue_waiver(release.id, "OTHER", "x", NOW + offset, "qa-lead", now=NOW)
        assert "expires_at" in exc.value.details

    def test_duplicates_allowed(self, release):
        _issue(release)
        _issue(release)
        assert len(svc.list_waivers(release.id)) == 2


# ═════════════════════════════════════════════════════════════════════════════
# Validity boundary
# ═════════════════════════════════════════════════════════════════════════════


class TestValidity:

    def test_valid_before_expiry(self, release):
        waiver = _issue(release)
        assert svc.is_valid(waiver.id, now=NOW + timedelta(days=30) - timedelta(microseconds=1)).id == waiver.id

    def test_invalid_at_exact_expiry(self, release):
        waiver = _issue(release)
        with pytest.raises(WaiverExpiredError) as exc:
            svc.is_valid(waiver.id, now=NOW + timedelta(days=30))
        assert exc.value.waiver_id == waiver.id

    def test_invalid_after_expiry(self, release):
        waiver = _issue(release)
        with pytest.raises(WaiverExpiredError):
            svc.is_valid(waiver.id, now=NOW + timedelta(days=31))

    def test_model_boundary(self, release):
        waiver = _issue(release, days=1)
        assert waiver.is_expired(NOW + timedelta(days=1)) is True
        assert waiver.is_expired(NOW + timedelta(days=1) - timedelta(microseconds=1)) is False

    def test_unknown_waiver(self):
        with pytest.raises(NotFoundError):
            svc.is_valid(31337, now=NOW)


# ═════════════════════════════════════════════════════════════════════════════
# Lookup
# ═════════════════════════════════════════════════════════════════════════════


class TestFindValidWaiver:

    def test_release_wide_lookup(self, release):
        waiver = _issue(release)
        found = svc.find_valid_waiver_for_target(release.id, "OTHER", now=NOW + timedelta(days=1))
        assert found.id == waiver.id

    def test_expired_not_returned(self, release):
        _issue(release, days=1)
        assert svc.find_valid_waiver_for_target(release.id, "OTHER", now=NOW + timedelta(days=1)) is None

    def test_most_recent_wins(self, release):
        _issue(release, days=30, now=NOW)
        newer = _issue(release, days=10, now=NOW + timedelta(hours=1))
        found = svc.find_valid_waiver_for_target(release.id, "OTHER", now=NOW + timedelta(hours=2))
        assert found.id == newer.id

    def test_per_target_lookup(self, release):
        waiver = _issue(release, target_type="FAIL_RESULT", target_id=17)
        assert svc.find_valid_waiver_for_target(release.id, "FAIL_RESULT", 17, now=NOW).id == waiver.id
        assert svc.find_valid_waiver_for_target(release.id, "FAIL_RESULT", 18, now=NOW) is None
        assert svc.find_valid_waiver_for_target(release.id, "FAIL_RESULT", now=NOW) is None

    def test_target_type_must_match(self, release):
        _issue(release, target_type="UNEXECUTED_TEST")
        assert svc.find_valid_waiver_for_target(release.id, "OTHER", now=NOW) is None

    def test_other_release_ignored(self, project, release):
        other = release_service.create_release(project.id, "R-2026.11")
        _issue(other)
        assert svc.find_valid_waiver_for_target(release.id, "OTHER", now=NOW) is None


# ═════════════════════════════════════════════════════════════════════════════
# Deletion & sweeping
# ═════════════════════════════════════════════════════════════════════════════


class TestSweep:

    def test_delete(self, release):
        waiver = _issue(release)
        svc.delete_waiver(waiver.id)
        assert Waiver.query.count() == 0

    def test_delete_unknown(self):
        with pytest.raises(NotFoundError):
            svc.delete_waiver(1)

    def test_find_expired(self, release):
        short = _issue(release, days=1)
        _issue(release, days=30)
        expired = svc.find_expired(now=NOW + timedelta(days=2))
        assert [w.id for w in expired] == [short.id]

    def test_sweep_report_only(self, release):
        _issue(release, days=1)
        report = svc.sweep_expired(now=NOW + timedelta(days=2))
        assert report["expired_count"] == 1
        assert report["deleted_count"] == 0
        assert Waiver.query.count() == 1

    def test_sweep_delete_is_idempotent(self, release):
        _issue(release, days=1)
        keep = _issue(release, days=30)
        later = NOW + timedelta(days=2)
        first = svc.sweep_expired(now=later, auto_delete=True)
        second = svc.sweep_expired(now=later, auto_delete=True)
        assert first["deleted_count"] == 1
        assert second["expired_count"] == 0
        assert second["deleted_count"] == 0
        assert [w.id for w in Waiver.query.all()] == [keep.id]


class TestSweepCommand:

    def test_cli_reports_and_deletes(self, app, release):
        _issue(release, days=1, now=NOW - timedelta(days=10))
        runner = app.test_cli_runner()
        result = runner.invoke(args=["sweep-waivers", "--delete"])
        assert result.exit_code == 0
        assert "1 expired waiver(s), 1 deleted" in result.output
        assert Waiver.query.count() == 0

    def test_cli_defaults_to_report_only(self, app, release):
        _issue(release, days=1, now=NOW - timedelta(days=10))
        runner = app.test_cli_runner()
        result = runner.invoke(args=["sweep-waivers"])
        assert result.exit_code == 0
        assert "1 expired waiver(s), 0 deleted" in result.output
        assert Waiver.query.count() == 1
