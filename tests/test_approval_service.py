"""Approval trail — append-only decision records."""

import pytest

from qagate.core.exceptions import ValidationError
from qagate.models import db
from qagate.services import approval_service as svc


class TestRecordDecision:

    def test_history_is_ordered_and_append_only(self):
        svc.record_decision("RELEASE", 7, "rm-1", comment="first look")
        svc.record_decision("RELEASE", 7, "rm-2", decision="REJECTED", comment="not yet", step=2)
        db.session.commit()

        history = svc.list_for_object("RELEASE", 7)
        assert [h["approver_id"] for h in history] == ["rm-1", "rm-2"]
        assert [h["step"] for h in history] == [1, 2]
        assert svc.latest_decision("RELEASE", 7).decision == "REJECTED"

    def test_other_objects_not_mixed(self):
        svc.record_decision("RELEASE", 7, "rm-1")
        svc.record_decision("CASE_REVISION", 7, "qa-lead")
        db.session.commit()
        assert len(svc.list_for_object("RELEASE", 7)) == 1
        assert svc.latest_decision("LIST_REVISION", 7) is None

    def test_evidence_links_kept(self):
        record = svc.record_decision("RELEASE", 1, "rm-1",
                                     evidence_links=["https://ci.example.com/runs/81"])
        assert record.to_dict()["evidence_links"] == ["https://ci.example.com/runs/81"]

    @pytest.mark.parametrize("kwargs,field", [
        ({"object_type": "PROGRAM"}, "object_type"),
        ({"decision": "MAYBE"}, "decision"),
        ({"approver_id": " "}, "approver_id"),
        ({"decision": "REJECTED", "comment": ""}, "comment"),
    ])
    def test_validation(self, kwargs, field):
        args = {"object_type": "RELEASE", "object_id": 1, "approver_id": "rm-1"}
        args.update(kwargs)
        with pytest.raises(ValidationError) as exc:
            svc.record_decision(**args)
        assert field in exc.value.details
