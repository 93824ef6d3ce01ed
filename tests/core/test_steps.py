import pytest
from app.core.errors import ConfigError
from app.core.steps import (
    DOCUMENT_TYPES,
    EntityType,
    StepId,
    allowed_sub_types,
    bank_subject_kind,
    coerce_entity_type,
    required_documents,
    steps_for,
)


def test_plans_per_entity_type():
    assert [s.value for s in steps_for("individual")] == ["kyc", "bank", "references", "agreement"]
    assert [s.value for s in steps_for("proprietorship")] == ["kyc", "bank", "references", "documents", "agreement"]
    assert [s.value for s in steps_for("partnership")] == ["partners", "bank", "documents", "references", "agreement"]
    assert [s.value for s in steps_for("company")] == [
        "company_verification", "directors", "bank", "documents", "agreement",
    ]


def test_every_plan_ends_with_agreement_and_has_bank():
    for et in EntityType:
        plan = steps_for(et)
        assert plan[-1] == StepId.AGREEMENT
        assert StepId.BANK in plan
        assert StepId.PAN not in plan


def test_unknown_entity_type_is_config_error():
    with pytest.raises(ConfigError):
        coerce_entity_type("trust")


def test_coerce_is_case_insensitive():
    assert coerce_entity_type(" Company ") == EntityType.COMPANY


def test_bank_subject_per_entity_type():
    assert bank_subject_kind("individual") == "primary"
    assert bank_subject_kind("proprietorship") == "primary"
    assert bank_subject_kind("partnership") == "lead_partner"
    assert bank_subject_kind("company") == "signatory_director"


def test_required_documents_for_company():
    required = [t for t, _, req in required_documents("company") if req]
    assert "certificate_of_incorporation" in required
    assert "board_resolution" in required
    assert "gst_certificate" not in required


@pytest.mark.parametrize("entity_type", list(EntityType))
def test_required_document_rows_name_known_types(entity_type):
    for doc_type, label, required in required_documents(entity_type):
        assert doc_type in DOCUMENT_TYPES
        assert label
        assert isinstance(required, bool)


def test_sub_types_only_for_company():
    assert allowed_sub_types("individual") == ()
    assert [s.value for s in allowed_sub_types("company")] == ["pvt_ltd", "llp", "opc"]
