import base64
import io
import json
import pathlib

import PIL.Image
import pytest

import nutrilabel.document
import nutrilabel.errors
import nutrilabel.payload


#============================================
def test_qr_content_by_type(document_factory) -> None:
	"""
	Payload text follows the QR content type.
	"""
	url_doc = document_factory(qr=nutrilabel.document.QrSpec(content="example.com", content_type="url"))
	assert nutrilabel.payload.build_qr_content(url_doc) == "https://example.com"

	ingredients_doc = document_factory(qr=nutrilabel.document.QrSpec(content_type="ingredients"))
	assert nutrilabel.payload.build_qr_content(ingredients_doc) == "Ingredients: Milk, cultures"

	custom_doc = document_factory(qr=nutrilabel.document.QrSpec(content=" batch 42 ", content_type="custom"))
	assert nutrilabel.payload.build_qr_content(custom_doc) == "batch 42"

	nutrition_doc = document_factory(qr=nutrilabel.document.QrSpec(content_type="nutrition"))
	data = json.loads(nutrilabel.payload.build_qr_content(nutrition_doc))
	assert data["product"] == "Greek Yogurt"
	assert data["calories"] == 120.0
	assert [item["name"] for item in data["nutrition"]] == ["Protein", "Sugars"]


#============================================
def test_qr_content_empty_cases(document_factory) -> None:
	assert nutrilabel.payload.build_qr_content(document_factory()) == ""
	blank = document_factory(qr=nutrilabel.document.QrSpec(content="  ", content_type="url"))
	assert nutrilabel.payload.build_qr_content(blank) == ""


#============================================
def test_qr_encoder_produces_square_png() -> None:
	encoder = nutrilabel.payload.QrImageEncoder()
	data = encoder.encode("https://example.com", "M", "#000000", "#ffffff")
	image = PIL.Image.open(io.BytesIO(data))
	assert image.format == "PNG"
	assert image.width == image.height
	assert image.width > 0


#============================================
def test_qr_encoder_embeds_logo(png_bytes) -> None:
	encoder = nutrilabel.payload.QrImageEncoder()
	plain = PIL.Image.open(io.BytesIO(encoder.encode("https://example.com", "H", "#000000", "#ffffff")))
	branded = PIL.Image.open(io.BytesIO(encoder.encode("https://example.com", "H", "#000000", "#ffffff", png_bytes)))
	assert plain.size == branded.size
	center = (branded.width // 2, branded.height // 2)
	# logo color is orange, QR modules are black or white
	assert branded.convert("RGB").getpixel(center) == (255, 107, 53)


#============================================
def test_qr_encoder_rejects_empty_content() -> None:
	with pytest.raises(nutrilabel.errors.EncoderError):
		nutrilabel.payload.QrImageEncoder().encode("", "M", "#000000", "#ffffff")


#============================================
def test_decode_image_rejects_garbage() -> None:
	with pytest.raises(nutrilabel.errors.AssetError):
		nutrilabel.payload.decode_image(b"not an image")


#============================================
def test_memory_store_and_data_urls(png_bytes) -> None:
	store = nutrilabel.payload.MemoryAssetStore({"logo.png": png_bytes})
	assert store.resolve("logo.png") == png_bytes
	data_url = "data:image/png;base64," + base64.b64encode(png_bytes).decode("ascii")
	assert store.resolve(data_url) == png_bytes
	with pytest.raises(nutrilabel.errors.AssetError):
		store.resolve("missing.png")
	with pytest.raises(nutrilabel.errors.AssetError):
		store.resolve("data:image/png;base64,@@@")


#============================================
def test_file_store_stays_inside_base(tmp_path: pathlib.Path, png_bytes) -> None:
	(tmp_path / "logo.png").write_bytes(png_bytes)
	store = nutrilabel.payload.FileAssetStore(tmp_path)
	assert store.resolve("logo.png") == png_bytes
	with pytest.raises(nutrilabel.errors.AssetError):
		store.resolve("../outside.png")
	with pytest.raises(nutrilabel.errors.AssetError):
		store.resolve("nope.png")
