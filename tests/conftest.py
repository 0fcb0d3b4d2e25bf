"""
Pytest configuration for local imports and shared label fixtures.
"""

# Standard Library
import io
import os
import sys

# PIP3 modules
import PIL.Image
import pytest


#============================================
def _ensure_repo_on_path() -> None:
	"""
	Ensure the repository root is on sys.path.
	"""
	repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
	if repo_root not in sys.path:
		sys.path.insert(0, repo_root)


_ensure_repo_on_path()

import nutrilabel.document  # noqa: E402
import nutrilabel.templates  # noqa: E402


#============================================
def make_png(width: int = 40, height: int = 20, color: str = "#ff6b35") -> bytes:
	"""
	Encode a solid PNG for logo and QR stand-ins.
	"""
	buffer = io.BytesIO()
	PIL.Image.new("RGBA", (width, height), color).save(buffer, format="PNG")
	return buffer.getvalue()


#============================================
def make_document(template_id: str = "fda-standard", **fields) -> nutrilabel.document.LabelDocument:
	"""
	Build a complete, valid label document from a template.
	"""
	defaults = {
		"product_name": nutrilabel.document.BilingualText("Greek Yogurt", "زبادي يوناني"),
		"brand_name": "Acme Dairy",
		"net_weight": "500 g",
		"calories": 120.0,
		"nutrition": (
			nutrilabel.document.NutritionFact("Protein", 5.0, "g", 10.0),
			nutrilabel.document.NutritionFact("Sugars", 4.0, "g", None),
		),
		"ingredients": nutrilabel.document.BilingualText("Milk, cultures", "حليب، بكتيريا نافعة"),
		"allergens": nutrilabel.document.BilingualSet(frozenset({"Milk"}), frozenset({"حليب"})),
	}
	defaults.update(fields)
	return nutrilabel.templates.new_document(template_id, **defaults)


@pytest.fixture
def png_bytes() -> bytes:
	return make_png()


@pytest.fixture
def document() -> nutrilabel.document.LabelDocument:
	return make_document()


@pytest.fixture
def document_factory():
	return make_document
