"""
Scannable payload content, QR image encoding and logo asset stores.
"""

# Standard Library
import base64
import binascii
import io
import json
import pathlib

# PIP3 modules
import PIL.Image
import qrcode
import qrcode.constants
import qrcode.exceptions

# local repo modules
import nutrilabel.document
import nutrilabel.errors
import nutrilabel.validation


AssetError = nutrilabel.errors.AssetError
EncoderError = nutrilabel.errors.EncoderError
LabelDocument = nutrilabel.document.LabelDocument

ERROR_LEVELS = {
	"L": qrcode.constants.ERROR_CORRECT_L,
	"M": qrcode.constants.ERROR_CORRECT_M,
	"Q": qrcode.constants.ERROR_CORRECT_Q,
	"H": qrcode.constants.ERROR_CORRECT_H,
}
QR_BOX_SIZE = 10
QR_BORDER = 1
QR_LOGO_FRACTION = 0.25


#============================================
def build_qr_content(document: LabelDocument) -> str:
	"""
	Build the text encoded into the QR code for a document.

	Args:
		document: Label document with a QR spec.

	Returns:
		Payload string, empty when there is nothing to encode.
	"""
	qr = document.qr
	if qr is None:
		return ""
	if qr.content_type == "nutrition":
		data = {
			"product": document.product_name.primary or "Product",
			"calories": document.calories,
			"servingSize": document.serving_size or "Not specified",
			"nutrition": [
				{
					"name": fact.name,
					"amount": fact.amount,
					"unit": fact.unit,
					"dailyValue": fact.daily_value_percent,
				}
				for fact in document.nutrition
			],
		}
		return json.dumps(data, ensure_ascii=False)
	if qr.content_type == "ingredients":
		ingredients = document.ingredients.primary.strip() or "No ingredients specified"
		return f"Ingredients: {ingredients}"
	if qr.content_type == "url":
		url = qr.content.strip()
		if not url:
			return ""
		if nutrilabel.validation.is_valid_url(url):
			return url
		return nutrilabel.validation.format_url(url)
	return qr.content.strip()


#============================================
def decode_image(data: bytes) -> PIL.Image.Image:
	"""
	Decode image bytes with Pillow.

	Args:
		data: Encoded image bytes.

	Returns:
		Loaded PIL image. Raises AssetError when undecodable.
	"""
	try:
		image = PIL.Image.open(io.BytesIO(data))
		image.load()
	except (OSError, ValueError, PIL.Image.DecompressionBombError) as error:
		raise AssetError(f"Cannot decode image: {error}") from error
	return image


class QrImageEncoder:
	"""
	Encode payload text into a PNG QR code with the qrcode package.
	"""

	def __init__(self, box_size: int = QR_BOX_SIZE, border: int = QR_BORDER) -> None:
		self.box_size = box_size
		self.border = border

	def encode(
		self,
		content: str,
		error_correction: str,
		color: str,
		background_color: str,
		logo: bytes | None = None,
	) -> bytes:
		"""
		Render a QR code image.

		Args:
			content: Payload text.
			error_correction: L, M, Q or H.
			color: Module color.
			background_color: Background color.
			logo: Optional logo bytes pasted into the center.

		Returns:
			PNG bytes. Raises EncoderError on failure.
		"""
		if not content:
			raise EncoderError("No QR content")
		if error_correction not in ERROR_LEVELS:
			raise EncoderError(f"Unknown error correction level: {error_correction}")
		code = qrcode.QRCode(
			error_correction=ERROR_LEVELS[error_correction],
			box_size=self.box_size,
			border=self.border,
		)
		try:
			code.add_data(content)
			code.make(fit=True)
			image = code.make_image(fill_color=color, back_color=background_color).get_image()
		except (ValueError, qrcode.exceptions.DataOverflowError) as error:
			raise EncoderError(f"QR encoding failed: {error}") from error
		image = image.convert("RGBA")
		if logo is not None:
			embed_logo(image, decode_image(logo), background_color)
		buffer = io.BytesIO()
		image.save(buffer, format="PNG")
		return buffer.getvalue()


#============================================
def embed_logo(image: PIL.Image.Image, logo: PIL.Image.Image, background_color: str) -> None:
	"""
	Paste a logo into the center of a QR image in place.

	Args:
		image: RGBA QR image.
		logo: Decoded logo.
		background_color: Pad color behind the logo.
	"""
	limit = max(1, int(image.width * QR_LOGO_FRACTION))
	logo = logo.convert("RGBA")
	logo.thumbnail((limit, limit))
	pad = 2
	box = PIL.Image.new("RGBA", (logo.width + 2 * pad, logo.height + 2 * pad), background_color)
	box.alpha_composite(logo, (pad, pad))
	left = (image.width - box.width) // 2
	top = (image.height - box.height) // 2
	image.alpha_composite(box, (left, top))


#============================================
def decode_data_url(reference: str) -> bytes | None:
	"""
	Decode a base64 data URL.

	Args:
		reference: Asset reference.

	Returns:
		Decoded bytes, or None if the reference is not a data URL.
	"""
	if not reference.startswith("data:"):
		return None
	header, _, payload = reference.partition(",")
	if not header.endswith(";base64"):
		raise AssetError("Only base64 data URLs are supported")
	try:
		return base64.b64decode(payload, validate=True)
	except (binascii.Error, ValueError) as error:
		raise AssetError(f"Bad data URL: {error}") from error


class MemoryAssetStore:
	def __init__(self, assets: dict[str, bytes] | None = None) -> None:
		self.assets = dict(assets or {})

	def put(self, reference: str, data: bytes) -> None:
		self.assets[reference] = data

	def resolve(self, reference: str) -> bytes:
		inline = decode_data_url(reference)
		if inline is not None:
			return inline
		if reference not in self.assets:
			raise AssetError(f"Unknown asset: {reference}")
		return self.assets[reference]


class FileAssetStore:
	"""
	Resolve asset references as paths under a base directory.
	"""

	def __init__(self, base_dir: pathlib.Path) -> None:
		self.base_dir = pathlib.Path(base_dir).expanduser().resolve()

	def resolve(self, reference: str) -> bytes:
		inline = decode_data_url(reference)
		if inline is not None:
			return inline
		path = (self.base_dir / reference).resolve()
		if not path.is_relative_to(self.base_dir):
			raise AssetError(f"Asset outside store: {reference}")
		if not path.is_file():
			raise AssetError(f"Asset not found: {reference}")
		return path.read_bytes()
