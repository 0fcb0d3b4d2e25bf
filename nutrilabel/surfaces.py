"""
Concrete drawing surfaces: Pillow raster, ReportLab PDF canvas and SVG.
"""

# Standard Library
import base64
import io
import logging

# PIP3 modules
import PIL.Image
import PIL.ImageDraw
import PIL.ImageFont
import reportlab.lib.utils
import reportlab.pdfgen.canvas
import svgwrite

# local repo modules
import nutrilabel.metrics
import nutrilabel.payload
import nutrilabel.render


Surface = nutrilabel.render.Surface
color_to_rgba = nutrilabel.render.color_to_rgba
parse_hex_color = nutrilabel.render.parse_hex_color

logger = logging.getLogger(__name__)

SVG_ANCHORS = {
	("ltr", "left"): "start",
	("ltr", "right"): "end",
	("ltr", "center"): "middle",
	("rtl", "left"): "end",
	("rtl", "right"): "start",
	("rtl", "center"): "middle",
}


class PillowSurface(Surface):
	"""
	RGBA raster surface with alpha compositing.

	fonts maps a font name to a TrueType file. A bold face is looked up
	as "<name> Bold"; without one, bold text gets a synthetic stroke.
	Unmapped or unreadable fonts fall back to Pillow's default face.
	"""

	def __init__(
		self,
		width: int,
		height: int,
		background: str | None = None,
		fonts: dict[str, str] | None = None,
	) -> None:
		fill = color_to_rgba(background) if background else (0, 0, 0, 0)
		self.image = PIL.Image.new("RGBA", (max(1, int(width)), max(1, int(height))), fill)
		self.draw = PIL.ImageDraw.Draw(self.image)
		self.fonts = dict(fonts or {})
		self._fonts: dict[tuple, PIL.ImageFont.FreeTypeFont] = {}
		self._broken: set[str] = set()

	def font_path(self, font_name: str, bold: bool = False) -> str | None:
		names = [f"{font_name} Bold", font_name] if bold else [font_name]
		for name in names:
			path = self.fonts.get(name)
			if path is not None and path not in self._broken:
				return path
		return None

	def resolve_font(self, font_name: str, font_size: float, bold: bool = False) -> PIL.ImageFont.FreeTypeFont:
		"""
		Load the face for a font name and size, cached per surface.

		Args:
			font_name: Font family name.
			font_size: Size in pixels.
			bold: Prefer the mapped bold face.

		Returns:
			Pillow font, the default face when nothing usable is mapped.
		"""
		size = max(1, int(round(font_size)))
		while True:
			path = self.font_path(font_name, bold)
			key = (path, size)
			if key in self._fonts:
				return self._fonts[key]
			if path is None:
				font = PIL.ImageFont.load_default(size=size)
				break
			try:
				font = PIL.ImageFont.truetype(path, size)
				break
			except OSError as error:
				logger.warning("Font %r unreadable at %s, trying fallback: %s", font_name, path, error)
				self._broken.add(path)
		self._fonts[key] = font
		return font

	def synthetic_bold(self, font_name: str, bold: bool) -> bool:
		if not bold:
			return False
		path = self.fonts.get(f"{font_name} Bold")
		return path is None or path in self._broken

	def _composite(self, paint) -> None:
		# translucent primitives go through a separate layer
		layer = PIL.Image.new("RGBA", self.image.size, (0, 0, 0, 0))
		paint(PIL.ImageDraw.Draw(layer))
		self.image.alpha_composite(layer)

	def _paint(self, alpha: float, paint) -> None:
		if alpha >= 1.0:
			paint(self.draw)
		else:
			self._composite(paint)

	def fill_rect(self, x, y, width, height, color, alpha=1.0):
		if width <= 0 or height <= 0:
			return
		box = [x, y, x + width - 1, y + height - 1]
		rgba = color_to_rgba(color, alpha)
		self._paint(alpha, lambda draw: draw.rectangle(box, fill=rgba))

	def stroke_rect(self, x, y, width, height, color, line_width, alpha=1.0):
		box = [x, y, x + width - 1, y + height - 1]
		rgba = color_to_rgba(color, alpha)
		stroke = max(1, int(round(line_width)))
		self._paint(alpha, lambda draw: draw.rectangle(box, outline=rgba, width=stroke))

	def draw_line(self, x1, y1, x2, y2, color, line_width, alpha=1.0):
		rgba = color_to_rgba(color, alpha)
		stroke = max(1, int(round(line_width)))
		self._paint(alpha, lambda draw: draw.line([(x1, y1), (x2, y2)], fill=rgba, width=stroke))

	def draw_text(
		self, text, x, y, font_name, font_size, color,
		bold=False, direction="ltr", align="left", alpha=1.0, character_spacing=0.0,
	):
		if not text:
			return
		font = self.resolve_font(font_name, font_size, bold)
		rgba = color_to_rgba(color, alpha)
		stroke = 1 if self.synthetic_bold(font_name, bold) and font_size >= 12 else 0
		advances = [font.getlength(char) + character_spacing for char in text]
		total = sum(advances)
		if align == "center":
			start = x - total / 2.0
		elif align == "right":
			start = x - total
		else:
			start = x

		def paint(draw):
			if direction == "rtl":
				# first logical glyph sits at the right edge
				cursor = start + total
				for char, advance in zip(text, advances):
					cursor -= advance
					draw.text((cursor, y), char, font=font, fill=rgba, anchor="ls", stroke_width=stroke, stroke_fill=rgba)
			elif character_spacing:
				cursor = start
				for char, advance in zip(text, advances):
					draw.text((cursor, y), char, font=font, fill=rgba, anchor="ls", stroke_width=stroke, stroke_fill=rgba)
					cursor += advance
			else:
				draw.text((start, y), text, font=font, fill=rgba, anchor="ls", stroke_width=stroke, stroke_fill=rgba)

		self._paint(alpha, paint)

	def draw_image(self, data, x, y, width, height, alpha=1.0):
		size = (max(1, int(round(width))), max(1, int(round(height))))
		image = nutrilabel.payload.decode_image(data).convert("RGBA").resize(size)
		if alpha < 1.0:
			channel = image.getchannel("A").point(lambda value: int(value * alpha))
			image.putalpha(channel)
		layer = PIL.Image.new("RGBA", self.image.size, (0, 0, 0, 0))
		layer.paste(image, (int(round(x)), int(round(y))))
		self.image.alpha_composite(layer)


class ReportLabSurface(Surface):
	"""
	Surface drawing onto a ReportLab canvas in points.

	Device coordinates have a top-left origin; the PDF origin is bottom
	left, so every y value is flipped against the page height.
	"""

	def __init__(self, pdf: reportlab.pdfgen.canvas.Canvas, page_height: float, metrics=None) -> None:
		self.pdf = pdf
		self.page_height = page_height
		self.metrics = metrics or nutrilabel.metrics.FontMetrics()

	def _fill(self, color: str, alpha: float) -> None:
		self.pdf.setFillColorRGB(*parse_hex_color(color))
		self.pdf.setFillAlpha(alpha)

	def _stroke(self, color: str, line_width: float, alpha: float) -> None:
		self.pdf.setStrokeColorRGB(*parse_hex_color(color))
		self.pdf.setStrokeAlpha(alpha)
		self.pdf.setLineWidth(line_width)

	def fill_rect(self, x, y, width, height, color, alpha=1.0):
		self.pdf.saveState()
		self._fill(color, alpha)
		self.pdf.rect(x, self.page_height - y - height, width, height, stroke=0, fill=1)
		self.pdf.restoreState()

	def stroke_rect(self, x, y, width, height, color, line_width, alpha=1.0):
		self.pdf.saveState()
		self._stroke(color, line_width, alpha)
		self.pdf.rect(x, self.page_height - y - height, width, height, stroke=1, fill=0)
		self.pdf.restoreState()

	def draw_line(self, x1, y1, x2, y2, color, line_width, alpha=1.0):
		self.pdf.saveState()
		self._stroke(color, line_width, alpha)
		self.pdf.line(x1, self.page_height - y1, x2, self.page_height - y2)
		self.pdf.restoreState()

	def draw_text(
		self, text, x, y, font_name, font_size, color,
		bold=False, direction="ltr", align="left", alpha=1.0, character_spacing=0.0,
	):
		if not text:
			return
		rl_name = self.metrics.resolve(font_name, bold)
		baseline = self.page_height - y
		if direction == "rtl":
			# visual order for fonts without shaping
			text = text[::-1]
		self.pdf.saveState()
		self._fill(color, alpha)
		self.pdf.setFont(rl_name, font_size)
		if align == "right":
			self.pdf.drawRightString(x, baseline, text, charSpace=character_spacing)
		elif align == "center":
			self.pdf.drawCentredString(x, baseline, text, charSpace=character_spacing)
		else:
			self.pdf.drawString(x, baseline, text, charSpace=character_spacing)
		self.pdf.restoreState()

	def draw_image(self, data, x, y, width, height, alpha=1.0):
		reader = reportlab.lib.utils.ImageReader(nutrilabel.payload.decode_image(data).convert("RGBA"))
		self.pdf.saveState()
		self.pdf.setFillAlpha(alpha)
		self.pdf.drawImage(
			reader,
			x,
			self.page_height - y - height,
			width=width,
			height=height,
			mask="auto",
		)
		self.pdf.restoreState()


class SvgSurface(Surface):
	"""
	Surface building an svgwrite drawing.

	Device units map one to one onto the viewBox; the physical size is
	given separately so vector output keeps real millimeters.
	"""

	def __init__(
		self,
		width: float,
		height: float,
		physical_size: tuple[str, str] | None = None,
		title: str = "",
		description: str = "",
	) -> None:
		size = physical_size or (str(width), str(height))
		self.drawing = svgwrite.Drawing(size=size, viewBox=f"0 0 {width} {height}", debug=False)
		if title or description:
			self.drawing.set_desc(title=title or None, desc=description or None)

	def fill_rect(self, x, y, width, height, color, alpha=1.0):
		self.drawing.add(
			self.drawing.rect(insert=(x, y), size=(width, height), fill=color, fill_opacity=alpha, stroke="none")
		)

	def stroke_rect(self, x, y, width, height, color, line_width, alpha=1.0):
		self.drawing.add(
			self.drawing.rect(
				insert=(x, y),
				size=(width, height),
				fill="none",
				stroke=color,
				stroke_width=line_width,
				stroke_opacity=alpha,
			)
		)

	def draw_line(self, x1, y1, x2, y2, color, line_width, alpha=1.0):
		self.drawing.add(
			self.drawing.line(
				start=(x1, y1), end=(x2, y2), stroke=color,
				stroke_width=line_width, stroke_opacity=alpha,
			)
		)

	def draw_text(
		self, text, x, y, font_name, font_size, color,
		bold=False, direction="ltr", align="left", alpha=1.0, character_spacing=0.0,
	):
		if not text:
			return
		params = {
			"insert": (x, y),
			"font_family": f"{font_name}, sans-serif",
			"font_size": font_size,
			"fill": color,
			"fill_opacity": alpha,
			"text_anchor": SVG_ANCHORS.get((direction, align), "start"),
		}
		if bold:
			params["font_weight"] = "bold"
		if direction == "rtl":
			params["direction"] = "rtl"
			params["unicode_bidi"] = "embed"
		if character_spacing:
			params["letter_spacing"] = character_spacing
		self.drawing.add(self.drawing.text(text, **params))

	def draw_image(self, data, x, y, width, height, alpha=1.0):
		image = nutrilabel.payload.decode_image(data)
		mime = PIL.Image.MIME.get(image.format or "PNG", "image/png")
		encoded = base64.b64encode(data).decode("ascii")
		self.drawing.add(
			self.drawing.image(
				href=f"data:{mime};base64,{encoded}",
				insert=(x, y),
				size=(width, height),
				opacity=alpha,
				preserveAspectRatio="none",
			)
		)

	def to_string(self) -> str:
		return self.drawing.tostring()

	def to_bytes(self) -> bytes:
		buffer = io.StringIO()
		self.drawing.write(buffer)
		return buffer.getvalue().encode("utf-8")
