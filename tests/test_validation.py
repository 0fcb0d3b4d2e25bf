import dataclasses

import pytest

import nutrilabel.document
import nutrilabel.validation


validation = nutrilabel.validation


#============================================
def test_complete_document_is_valid(document) -> None:
	result = validation.validate(document)
	assert result.is_valid
	assert result.export_allowed
	assert result.errors == ()
	assert result.warnings == ()


#============================================
def test_empty_product_name_blocks_export(document_factory) -> None:
	document = document_factory(product_name=nutrilabel.document.BilingualText("   ", "زبادي"))
	result = validation.validate(document)
	assert not result.export_allowed
	assert [issue.field for issue in result.errors] == ["product_name"]


#============================================
def test_empty_brand_is_only_a_warning(document_factory) -> None:
	"""
	Warnings never block export.
	"""
	document = document_factory(brand_name="")
	result = validation.validate(document)
	assert result.export_allowed
	assert [issue.field for issue in result.warnings] == ["brand_name"]
	assert result.warnings[0].suggestion


#============================================
def test_nutrition_required_for_fda_only(document_factory) -> None:
	fda_document = document_factory(nutrition=())
	fda_result = validation.validate(fda_document)
	assert [issue.field for issue in fda_result.errors] == ["nutrition"]

	for standard in ("EU", "SFDA", "CUSTOM"):
		other = dataclasses.replace(fda_document, regulatory_standard=standard)
		assert validation.validate(other).is_valid


#============================================
def test_qr_url_without_scheme_warns_with_suggestion(document_factory) -> None:
	qr = nutrilabel.document.QrSpec(content="example.com/yogurt", content_type="url")
	result = validation.validate(document_factory(qr=qr))
	assert result.is_valid
	assert len(result.warnings) == 1
	assert result.warnings[0].field == "qr.content"
	assert result.warnings[0].suggestion == "https://example.com/yogurt"


#============================================
def test_sfda_expects_secondary_name(document_factory) -> None:
	document = document_factory(
		product_name=nutrilabel.document.BilingualText("Greek Yogurt", ""),
		regulatory_standard="SFDA",
	)
	result = validation.validate(document)
	assert result.is_valid
	assert [issue.field for issue in result.warnings] == ["product_name.secondary"]


#============================================
def test_custom_rule_registers_without_engine_changes(document_factory) -> None:
	"""
	New rules plug into a registry copy; the default set is untouched.
	"""
	def rule_net_weight(document):
		if document.net_weight.strip():
			return []
		return [validation.ValidationIssue("net_weight", "Net weight is required for EU")]

	registry = validation.build_default_registry()
	registry.register("eu_net_weight", rule_net_weight, "error", standards=["EU"])
	document = document_factory("eu-nutrition", net_weight="")

	result = validation.validate(document, registry)
	assert [issue.field for issue in result.errors] == ["net_weight"]
	assert validation.validate(document).is_valid
	assert "eu_net_weight" not in validation.DEFAULT_REGISTRY.names()


#============================================
def test_registry_rejects_bad_registrations() -> None:
	registry = validation.RuleRegistry()
	with pytest.raises(ValueError):
		registry.register("bad", lambda document: [], severity="fatal")
	with pytest.raises(ValueError):
		registry.register("bad", lambda document: [], standards=["USDA"])


#============================================
def test_url_helpers() -> None:
	assert validation.is_valid_url("https://example.com")
	assert not validation.is_valid_url("ftp://example.com")
	assert not validation.is_valid_url("example.com")
	assert validation.format_url("HTTP://Example.com") == "HTTP://Example.com"
	assert validation.format_url("example.com") == "https://example.com"
	assert validation.format_url("  ") == ""
