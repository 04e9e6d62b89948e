"""
Data model tests

Covers:
1. Input data type tags
2. Conversion request validation
3. Layered template collections
4. Template collection references
"""
import pytest
from pydantic import ValidationError

from dataconvert.models import (
    AccessToken,
    ConversionRequest,
    InputDataType,
    ProcessorSettings,
    TemplateCollection,
)
from dataconvert.reference import (
    DEFAULT_TEMPLATE_REFERENCE,
    InvalidReferenceError,
    TemplateReference,
    is_default_reference,
)


class TestInputDataType:
    """Test input data type tags."""

    def test_tag_lookup_is_case_insensitive(self):
        assert InputDataType("Hl7v2") is InputDataType.HL7V2
        assert InputDataType("hl7v2") is InputDataType.HL7V2
        assert InputDataType("HL7V2") is InputDataType.HL7V2

    @pytest.mark.parametrize("tag", ["cda", "fhir", "jpeg", "           "])
    def test_unknown_tags_are_rejected(self, tag):
        with pytest.raises(ValueError):
            InputDataType(tag)


class TestConversionRequest:
    """Test request validation at the boundary."""

    def test_valid_request(self):
        request = ConversionRequest(
            input_data="MSH|^~\\&|...",
            input_data_type="hl7v2",
            template_collection_reference=DEFAULT_TEMPLATE_REFERENCE,
            entry_point_template="ADT_A01"
        )

        assert request.input_data_type is InputDataType.HL7V2
        assert request.registry_server is None

    def test_unknown_input_type_is_rejected(self):
        with pytest.raises(ValidationError):
            ConversionRequest(
                input_data="x",
                input_data_type="cda",
                template_collection_reference=DEFAULT_TEMPLATE_REFERENCE,
                entry_point_template="ADT_A01"
            )

    def test_empty_entry_point_is_rejected(self):
        with pytest.raises(ValidationError):
            ConversionRequest(
                input_data="x",
                input_data_type="Hl7v2",
                template_collection_reference=DEFAULT_TEMPLATE_REFERENCE,
                entry_point_template=""
            )


class TestTemplateCollection:
    """Test layered template lookup."""

    def test_last_layer_wins(self):
        collection = TemplateCollection(layers=[
            {"ADT_A01": "base", "Resource/Patient": "base patient"},
            {"Resource/Patient": "override patient"},
        ])

        assert collection.get("ADT_A01") == "base"
        assert collection.get("Resource/Patient") == "override patient"

    def test_missing_template(self):
        collection = TemplateCollection.from_layer({"ADT_A01": "x"})

        assert collection.get("ORU_R01") is None
        assert "ORU_R01" not in collection
        assert "ADT_A01" in collection

    def test_names_and_length_count_each_name_once(self):
        collection = TemplateCollection(layers=[{"a": "1", "b": "2"}, {"b": "3", "c": "4"}])

        assert collection.names() == {"a", "b", "c"}
        assert len(collection) == 3

    def test_empty_collection(self):
        assert TemplateCollection().is_empty
        assert TemplateCollection(layers=[{}, {}]).is_empty
        assert not TemplateCollection.from_layer({"a": "1"}).is_empty

    def test_from_layer_copies_input(self):
        layer = {"a": "1"}
        collection = TemplateCollection.from_layer(layer)
        layer["a"] = "changed"

        assert collection.get("a") == "1"


class TestAccessTokenAndSettings:
    """Test small value types."""

    def test_token_value_not_in_repr(self):
        token = AccessToken(value="super-secret", server="test.azurecr.io")

        assert "super-secret" not in repr(token)
        assert "test.azurecr.io" in repr(token)

    def test_processor_settings_are_immutable(self):
        settings = ProcessorSettings(timeout=1.5)

        with pytest.raises(Exception):
            settings.timeout = 3


class TestTemplateReference:
    """Test template collection reference classification and parsing."""

    @pytest.mark.parametrize("reference", [
        DEFAULT_TEMPLATE_REFERENCE,
        "MicrosoftHealth/FhirConverter:Default",
        "MICROSOFTHEALTH/FHIRCONVERTER:DEFAULT",
    ])
    def test_default_reference_is_case_insensitive(self, reference):
        assert is_default_reference(reference)

    @pytest.mark.parametrize("reference", [
        "microsofthealth/fhirconverter:default2",
        "test.azurecr.io/fhirconverter:default",
        "",
    ])
    def test_other_references_are_not_default(self, reference):
        assert not is_default_reference(reference)

    def test_parse_tagged_reference(self):
        ref = TemplateReference.parse("Test.AzureCR.io/templates/hl7v2:v1.2")

        assert ref.registry == "test.azurecr.io"
        assert ref.repository == "templates/hl7v2"
        assert ref.tag == "v1.2"
        assert ref.digest is None
        assert ref.manifest_ref == "v1.2"
        assert str(ref) == "test.azurecr.io/templates/hl7v2:v1.2"

    def test_parse_digest_reference(self):
        digest = "sha256:592535ef52d742f81e35f4d87b43d9b535ed56cf58c90a14fc5fd7ea0fbb8696"
        ref = TemplateReference.parse(f"test.azurecr.com/template@{digest}")

        assert ref.digest == digest
        assert ref.tag is None
        assert ref.manifest_ref == digest

    def test_missing_tag_defaults_to_latest(self):
        ref = TemplateReference.parse("test.azurecr.io/template")

        assert ref.tag == "latest"

    @pytest.mark.parametrize("reference", [
        "test.azurecr.io",
        "template:default",
        "/template:default",
        "*****####.com/template:default",
        "test.azurecr.io/template@sha256:abc",
    ])
    def test_invalid_shapes_are_rejected(self, reference):
        with pytest.raises(InvalidReferenceError):
            TemplateReference.parse(reference)
