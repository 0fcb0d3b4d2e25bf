"""
Layout engine: converts a label document into ordered draw instructions.

All geometry starts in millimeters and is multiplied by a single scale
(device units per millimeter) before it is emitted, so a layout pass is
always computed fresh from the document and never from a previous pass.
Coordinates use a top-left origin with y growing downward. Text
instructions carry the baseline position and an anchor alignment.
"""

# Standard Library
import dataclasses
import logging

# local repo modules
import nutrilabel.config
import nutrilabel.document
import nutrilabel.errors
import nutrilabel.metrics
import nutrilabel.nutrition
import nutrilabel.payload


logger = logging.getLogger(__name__)

config = nutrilabel.config
LabelDocument = nutrilabel.document.LabelDocument
BilingualText = nutrilabel.document.BilingualText
LabelError = nutrilabel.errors.LabelError
format_amount = nutrilabel.nutrition.format_amount

VIEWPORT_FILL = config.VIEWPORT_FILL
SECTION_GAP_MM = config.SECTION_GAP_MM
HEADING_GAP_MM = config.HEADING_GAP_MM
NUTRITION_ROW_PADDING_MM = config.NUTRITION_ROW_PADDING_MM
RULE_THICKNESS_MM = config.RULE_THICKNESS_MM
GRID_STEP_MM = config.GRID_STEP_MM
GRID_COLOR = config.GRID_COLOR
GRID_LINE_MM = config.GRID_LINE_MM
RULER_TICK_MM = config.RULER_TICK_MM
RULER_COLOR = config.RULER_COLOR
RULER_LABEL_PT = 6.0
PLACEHOLDER_FILL = config.PLACEHOLDER_FILL
PLACEHOLDER_FILL_ALPHA = config.PLACEHOLDER_FILL_ALPHA
PLACEHOLDER_STROKE_ALPHA = config.PLACEHOLDER_STROKE_ALPHA
PLACEHOLDER_TEXT_ALPHA = config.PLACEHOLDER_TEXT_ALPHA
PLACEHOLDER_TEXT_PT = config.PLACEHOLDER_TEXT_PT
QR_PLACEHOLDER_CELLS = config.QR_PLACEHOLDER_CELLS

NUTRITION_TITLE = "Nutrition Facts"
INGREDIENTS_TITLE = "Ingredients:"
ALLERGENS_PREFIX = "Contains: "
SECONDARY_ALLERGENS_PREFIX = "يحتوي على: "
SECONDARY_SEPARATOR = "، "


@dataclasses.dataclass(frozen=True)
class DrawInstruction:
	kind: str
	x: float
	y: float
	width: float = 0.0
	height: float = 0.0
	x2: float = 0.0
	y2: float = 0.0
	color: str = "#000000"
	alpha: float = 1.0
	line_width: float = 0.0
	text: str = ""
	font_name: str = ""
	font_size: float = 0.0
	bold: bool = False
	direction: str = "ltr"
	align: str = "left"
	character_spacing: float = 0.0
	image_data: bytes = b""
	layer: str = "body"


@dataclasses.dataclass(frozen=True)
class SectionBox:
	id: str
	type: str
	top: float
	height: float


@dataclasses.dataclass(frozen=True)
class LayoutResult:
	instructions: tuple[DrawInstruction, ...]
	scale: float
	width: float
	height: float
	sections: tuple[SectionBox, ...] = ()
	overflow: tuple[str, ...] = ()


@dataclasses.dataclass(frozen=True)
class TextTrack:
	text: str
	font_name: str
	direction: str


#============================================
def compute_scale(
	doc_dims: tuple[float, float],
	viewport_dims: tuple[float, float],
	zoom_percent: float,
) -> float:
	"""
	Fit the document into the viewport and apply zoom.

	The document is fitted into 80% of the viewport while keeping its
	aspect ratio. A viewport or document without extent uses a fit scale
	of 1.0.

	Args:
		doc_dims: Document (width, height) in mm.
		viewport_dims: Viewport (width, height) in device units.
		zoom_percent: Zoom level in percent.

	Returns:
		Device units per millimeter.
	"""
	doc_width, doc_height = doc_dims
	view_width, view_height = viewport_dims
	if min(doc_width, doc_height, view_width, view_height) <= 0:
		fit = 1.0
	else:
		fit = min(
			(view_width * VIEWPORT_FILL) / doc_width,
			(view_height * VIEWPORT_FILL) / doc_height,
		)
	return fit * (zoom_percent / 100.0)


#============================================
def wrap_words(text: str, available_width: float, measure) -> list[str]:
	"""
	Greedy word wrap on whitespace.

	Lines never exceed the available width unless they hold a single token
	that is wider than the width by itself; such a token sits on its own
	line and is never split.

	Args:
		text: Input text.
		available_width: Maximum line width in device units.
		measure: Callable returning the width of a string.

	Returns:
		List of lines in logical order.
	"""
	words = text.split()
	lines: list[str] = []
	current = ""
	for word in words:
		candidate = word if not current else f"{current} {word}"
		if not current or measure(candidate) <= available_width:
			current = candidate
			continue
		lines.append(current)
		current = word
	if current:
		lines.append(current)
	return lines


#============================================
def bilingual_tracks(field: BilingualText, typography: nutrilabel.document.Typography) -> tuple[TextTrack, TextTrack]:
	"""
	Split a bilingual field into its LTR and RTL tracks.

	Args:
		field: Bilingual text.
		typography: Typography spec with both fonts.

	Returns:
		Tuple of (primary_track, secondary_track).
	"""
	primary = TextTrack(field.primary.strip(), typography.primary_font, "ltr")
	secondary = TextTrack(field.secondary.strip(), typography.secondary_font, "rtl")
	return (primary, secondary)


class SectionFlow:
	"""
	Vertical text flow for the body sections of one layout pass.
	"""

	def __init__(self, document: LabelDocument, metrics, scale: float) -> None:
		self.document = document
		self.metrics = metrics
		self.scale = scale
		margins = document.layout.margins
		self.left = margins.left * scale
		self.right = (document.layout.dimensions.width - margins.right) * scale
		self.cursor = margins.top * scale
		self.typography = document.typography
		self.instructions: list[DrawInstruction] = []

	@property
	def content_width(self) -> float:
		return self.right - self.left

	def font_px(self, points: float) -> float:
		return config.points_to_mm(points) * self.scale

	def gap(self, millimeters: float) -> None:
		self.cursor += millimeters * self.scale

	def text_block(
		self,
		track: TextTrack,
		size_pt: float,
		color: str,
		bold: bool = False,
		align: str | None = None,
	) -> int:
		"""
		Wrap and emit a text track at the cursor.

		Args:
			track: Text track to flow.
			size_pt: Font size in points.
			color: Text color.
			bold: Bold weight flag.
			align: left, right or center; defaults by direction.

		Returns:
			Number of lines emitted.
		"""
		if not track.text:
			return 0
		font_size = self.font_px(size_pt)
		spacing = self.typography.character_spacing * self.scale
		if align is None:
			align = "right" if track.direction == "rtl" else "left"

		def measure(value: str) -> float:
			return self.metrics.measure(value, track.font_name, font_size, bold, spacing)

		lines = wrap_words(track.text, self.content_width, measure)
		ascent = self.metrics.ascent(track.font_name, font_size, bold)
		advance = font_size * self.typography.line_spacing
		if align == "center":
			anchor = (self.left + self.right) / 2.0
		elif align == "right":
			anchor = self.right
		else:
			anchor = self.left
		for line in lines:
			self.instructions.append(
				DrawInstruction(
					kind="text",
					x=anchor,
					y=self.cursor + ascent,
					text=line,
					font_name=track.font_name,
					font_size=font_size,
					bold=bold,
					color=color,
					direction=track.direction,
					align=align,
					character_spacing=spacing,
				)
			)
			self.cursor += advance
		return len(lines)

	def rule(self, color: str) -> None:
		thickness = RULE_THICKNESS_MM * self.scale
		self.instructions.append(
			DrawInstruction(
				kind="fill_rect",
				x=self.left,
				y=self.cursor,
				width=self.content_width,
				height=thickness,
				color=color,
			)
		)
		self.cursor += thickness + HEADING_GAP_MM * self.scale

	def nutrition_row(self, fact: nutrilabel.document.NutritionFact) -> None:
		typography = self.typography
		font_size = self.font_px(typography.font_sizes.body)
		font_name = typography.primary_font
		baseline = self.cursor + self.metrics.ascent(font_name, font_size)
		spacing = typography.character_spacing * self.scale
		label = f"{fact.name}: {format_amount(fact.amount)}{fact.unit}"
		self.instructions.append(
			DrawInstruction(
				kind="text",
				x=self.left,
				y=baseline,
				text=label,
				font_name=font_name,
				font_size=font_size,
				color=typography.colors.secondary,
				align="left",
				character_spacing=spacing,
			)
		)
		if fact.daily_value_percent is not None:
			self.instructions.append(
				DrawInstruction(
					kind="text",
					x=self.right,
					y=baseline,
					text=f"{format_amount(fact.daily_value_percent)}%",
					font_name=font_name,
					font_size=font_size,
					color=typography.colors.secondary,
					align="right",
					character_spacing=spacing,
				)
			)
		self.cursor += font_size + NUTRITION_ROW_PADDING_MM * self.scale

	#============================================
	def header(self) -> None:
		document = self.document
		sizes = self.typography.font_sizes
		primary, secondary = bilingual_tracks(document.product_name, self.typography)
		color = self.typography.colors.primary
		emitted = self.text_block(primary, sizes.heading, color, bold=True, align="center")
		if emitted and secondary.text:
			self.gap(HEADING_GAP_MM)
		self.text_block(secondary, sizes.heading, color, bold=True, align="center")

	def branding(self) -> None:
		track = TextTrack(self.document.brand_name.strip(), self.typography.primary_font, "ltr")
		self.text_block(track, self.typography.font_sizes.subheading, self.typography.colors.secondary, align="center")

	def nutrition(self) -> None:
		document = self.document
		typography = self.typography
		sizes = typography.font_sizes
		colors = typography.colors
		font = typography.primary_font
		self.text_block(TextTrack(NUTRITION_TITLE, font, "ltr"), sizes.subheading, colors.primary, bold=True)
		self.rule(colors.accent)
		if document.serving_size.strip():
			serving = TextTrack(f"Serving Size: {document.serving_size.strip()}", font, "ltr")
			self.text_block(serving, sizes.body, colors.secondary)
		if document.servings_per_container.strip():
			servings = TextTrack(f"Servings Per Container: {document.servings_per_container.strip()}", font, "ltr")
			self.text_block(servings, sizes.body, colors.secondary)
		if document.calories > 0:
			calories = TextTrack(f"Calories: {format_amount(document.calories)}", font, "ltr")
			self.text_block(calories, sizes.subheading, colors.primary, bold=True)
		for fact in document.nutrition:
			self.nutrition_row(fact)

	def ingredients(self) -> None:
		document = self.document
		typography = self.typography
		primary, secondary = bilingual_tracks(document.ingredients, typography)
		if not primary.text and not secondary.text:
			return
		title = TextTrack(INGREDIENTS_TITLE, typography.primary_font, "ltr")
		self.text_block(title, typography.font_sizes.body, typography.colors.primary, bold=True)
		self.text_block(primary, typography.font_sizes.small, typography.colors.secondary)
		self.text_block(secondary, typography.font_sizes.small, typography.colors.secondary)

	def allergens(self) -> None:
		allergens = self.document.allergens
		typography = self.typography
		field = BilingualText(
			primary=ALLERGENS_PREFIX + ", ".join(sorted(allergens.primary)) if allergens.primary else "",
			secondary=SECONDARY_ALLERGENS_PREFIX + SECONDARY_SEPARATOR.join(sorted(allergens.secondary)) if allergens.secondary else "",
		)
		primary, secondary = bilingual_tracks(field, typography)
		self.text_block(primary, typography.font_sizes.small, typography.colors.primary, bold=True)
		self.text_block(secondary, typography.font_sizes.small, typography.colors.primary, bold=True)

	def footer(self) -> None:
		net_weight = self.document.net_weight.strip()
		if not net_weight:
			return
		track = TextTrack(f"Net Wt. {net_weight}", self.typography.primary_font, "ltr")
		self.text_block(track, self.typography.font_sizes.small, self.typography.colors.secondary)


#============================================
def layout_sections(
	document: LabelDocument,
	metrics,
	scale: float,
) -> tuple[list[DrawInstruction], list[SectionBox], list[str]]:
	"""
	Flow the visible sections top to bottom.

	Sections are taken in ascending order. Each block is as tall as its
	wrapped content, so extra wrapped lines push later sections down.

	Args:
		document: Label document.
		metrics: Font metrics provider.
		scale: Device units per millimeter.

	Returns:
		Tuple of (instructions, section_boxes, overflowing_section_ids).
	"""
	flow = SectionFlow(document, metrics, scale)
	handlers = {
		"header": flow.header,
		"branding": flow.branding,
		"nutrition": flow.nutrition,
		"ingredients": flow.ingredients,
		"allergens": flow.allergens,
		"footer": flow.footer,
	}
	bottom_limit = (document.layout.dimensions.height - document.layout.margins.bottom) * scale
	boxes: list[SectionBox] = []
	overflow: list[str] = []
	for section in nutrilabel.document.sorted_sections(document.layout):
		handler = handlers.get(section.type)
		if handler is None:
			continue
		top = flow.cursor
		handler()
		height = flow.cursor - top
		boxes.append(SectionBox(id=section.id, type=section.type, top=top, height=height))
		if height <= 0:
			continue
		if flow.cursor > bottom_limit + 1e-9:
			overflow.append(section.id)
		flow.gap(SECTION_GAP_MM)
	return (flow.instructions, boxes, overflow)


#============================================
def grid_instructions(width_mm: float, height_mm: float, scale: float) -> list[DrawInstruction]:
	"""
	Debug grid lines every GRID_STEP_MM.
	"""
	instructions: list[DrawInstruction] = []
	line_width = GRID_LINE_MM * scale
	x = 0.0
	while x <= width_mm + 1e-9:
		instructions.append(
			DrawInstruction(
				kind="line", x=x * scale, y=0.0, x2=x * scale, y2=height_mm * scale,
				color=GRID_COLOR, line_width=line_width, layer="grid",
			)
		)
		x += GRID_STEP_MM
	y = 0.0
	while y <= height_mm + 1e-9:
		instructions.append(
			DrawInstruction(
				kind="line", x=0.0, y=y * scale, x2=width_mm * scale, y2=y * scale,
				color=GRID_COLOR, line_width=line_width, layer="grid",
			)
		)
		y += GRID_STEP_MM
	return instructions


#============================================
def ruler_instructions(width_mm: float, height_mm: float, scale: float) -> list[DrawInstruction]:
	"""
	Millimeter ruler ticks along the top and left edges.

	Args:
		width_mm: Label width.
		height_mm: Label height.
		scale: Device units per millimeter.

	Returns:
		Tick lines and labels every GRID_STEP_MM.
	"""
	instructions: list[DrawInstruction] = []
	tick = RULER_TICK_MM * scale
	line_width = GRID_LINE_MM * scale
	label_size = config.points_to_mm(RULER_LABEL_PT) * scale
	steps_x = int(width_mm // GRID_STEP_MM)
	for index in range(1, steps_x + 1):
		x = index * GRID_STEP_MM * scale
		instructions.append(
			DrawInstruction(kind="line", x=x, y=0.0, x2=x, y2=tick, color=RULER_COLOR, line_width=line_width, layer="rulers")
		)
		instructions.append(
			DrawInstruction(
				kind="text", x=x, y=tick + label_size, text=str(int(index * GRID_STEP_MM)),
				font_name=config.DEFAULT_FONT_REGULAR, font_size=label_size, color=RULER_COLOR,
				align="center", layer="rulers",
			)
		)
	steps_y = int(height_mm // GRID_STEP_MM)
	for index in range(1, steps_y + 1):
		y = index * GRID_STEP_MM * scale
		instructions.append(
			DrawInstruction(kind="line", x=0.0, y=y, x2=tick, y2=y, color=RULER_COLOR, line_width=line_width, layer="rulers")
		)
		instructions.append(
			DrawInstruction(
				kind="text", x=tick * 1.5, y=y + label_size / 2.0, text=str(int(index * GRID_STEP_MM)),
				font_name=config.DEFAULT_FONT_REGULAR, font_size=label_size, color=RULER_COLOR,
				align="left", layer="rulers",
			)
		)
	return instructions


#============================================
def resolve_logo_bytes(document: LabelDocument, asset_store) -> bytes | None:
	"""
	Fetch and check the logo image, None when it cannot be used.

	Args:
		document: Label document.
		asset_store: Object with resolve(reference) -> bytes, or None.

	Returns:
		Decodable image bytes or None.
	"""
	logo = document.branding.logo
	if logo is None:
		return None
	if asset_store is None:
		logger.warning("No asset store for logo %r, painting placeholder", logo.asset_ref)
		return None
	try:
		data = asset_store.resolve(logo.asset_ref)
		nutrilabel.payload.decode_image(data)
	except (LabelError, OSError) as error:
		logger.warning("Logo %r unusable, painting placeholder: %s", logo.asset_ref, error)
		return None
	return data


#============================================
def qr_instructions(
	document: LabelDocument,
	scale: float,
	qr_encoder,
	logo_bytes: bytes | None,
) -> list[DrawInstruction]:
	"""
	Paint instructions for the QR block.

	Args:
		document: Label document.
		scale: Device units per millimeter.
		qr_encoder: Object with encode(...) -> PNG bytes, or None.
		logo_bytes: Logo bytes for embedding, if any.

	Returns:
		Image instruction, or a placeholder pattern when encoding fails.
	"""
	qr = document.qr
	content = nutrilabel.payload.build_qr_content(document)
	if qr is None or not content:
		return []
	x = qr.position.x * scale
	y = qr.position.y * scale
	size = qr.size * scale
	image_data = b""
	if qr_encoder is not None:
		embed = logo_bytes if qr.logo_embedded else None
		try:
			image_data = qr_encoder.encode(content, qr.error_correction, qr.color, qr.background_color, embed)
		except (LabelError, OSError, ValueError) as error:
			logger.warning("QR encoding failed, painting placeholder: %s", error)
	if image_data:
		return [DrawInstruction(kind="image", x=x, y=y, width=size, height=size, image_data=image_data, layer="qr")]

	instructions = [
		DrawInstruction(kind="fill_rect", x=x, y=y, width=size, height=size, color=qr.background_color, layer="qr"),
		DrawInstruction(
			kind="stroke_rect", x=x, y=y, width=size, height=size,
			color=qr.color, line_width=0.25 * scale, layer="qr",
		),
	]
	cell = size / QR_PLACEHOLDER_CELLS
	for column in range(QR_PLACEHOLDER_CELLS):
		for row in range(QR_PLACEHOLDER_CELLS):
			if (column + row) % 3 != 0:
				continue
			instructions.append(
				DrawInstruction(
					kind="fill_rect", x=x + column * cell, y=y + row * cell,
					width=cell, height=cell, color=qr.color, layer="qr",
				)
			)
	return instructions


#============================================
def logo_instructions(
	document: LabelDocument,
	scale: float,
	metrics,
	logo_bytes: bytes | None,
) -> list[DrawInstruction]:
	"""
	Paint instructions for the logo block.

	Args:
		document: Label document.
		scale: Device units per millimeter.
		metrics: Font metrics provider.
		logo_bytes: Decodable logo bytes, or None for the placeholder.

	Returns:
		Image instruction with opacity, or a labeled placeholder.
	"""
	logo = document.branding.logo
	if logo is None:
		return []
	x = logo.position.x * scale
	y = logo.position.y * scale
	width = logo.dimensions.width * scale
	height = logo.dimensions.height * scale
	if logo_bytes is not None:
		return [
			DrawInstruction(
				kind="image", x=x, y=y, width=width, height=height,
				image_data=logo_bytes, alpha=logo.opacity, layer="logo",
			)
		]
	font_size = config.points_to_mm(PLACEHOLDER_TEXT_PT) * scale
	ascent = metrics.ascent(config.DEFAULT_FONT_REGULAR, font_size)
	return [
		DrawInstruction(
			kind="fill_rect", x=x, y=y, width=width, height=height,
			color=PLACEHOLDER_FILL, alpha=PLACEHOLDER_FILL_ALPHA * logo.opacity, layer="logo",
		),
		DrawInstruction(
			kind="stroke_rect", x=x, y=y, width=width, height=height, line_width=0.25 * scale,
			color=PLACEHOLDER_FILL, alpha=PLACEHOLDER_STROKE_ALPHA * logo.opacity, layer="logo",
		),
		DrawInstruction(
			kind="text", x=x + width / 2.0, y=y + (height + ascent) / 2.0, text="LOGO",
			font_name=config.DEFAULT_FONT_REGULAR, font_size=font_size, align="center",
			color=PLACEHOLDER_FILL, alpha=PLACEHOLDER_TEXT_ALPHA * logo.opacity, layer="logo",
		),
	]


#============================================
def build_layout(
	document: LabelDocument,
	scale: float,
	metrics=None,
	asset_store=None,
	qr_encoder=None,
	show_grid: bool = False,
	show_rulers: bool = False,
) -> LayoutResult:
	"""
	Lay out a document at a given scale.

	Paint order is background, grid, rulers, body sections, QR block and
	finally the logo so it can overlay everything else.

	Args:
		document: Label document.
		scale: Device units per millimeter.
		metrics: Font metrics provider, defaults to FontMetrics.
		asset_store: Logo asset store.
		qr_encoder: QR image encoder.
		show_grid: Paint the debug grid.
		show_rulers: Paint ruler ticks.

	Returns:
		LayoutResult with an immutable instruction tuple.
	"""
	if metrics is None:
		metrics = nutrilabel.metrics.FontMetrics()
	dims = document.layout.dimensions
	width = dims.width * scale
	height = dims.height * scale

	instructions: list[DrawInstruction] = [
		DrawInstruction(
			kind="fill_rect", x=0.0, y=0.0, width=width, height=height,
			color=document.branding.colors.background, layer="background",
		)
	]
	if show_grid:
		instructions.extend(grid_instructions(dims.width, dims.height, scale))
	if show_rulers:
		instructions.extend(ruler_instructions(dims.width, dims.height, scale))

	body, boxes, overflow = layout_sections(document, metrics, scale)
	instructions.extend(body)

	logo_bytes = resolve_logo_bytes(document, asset_store)
	instructions.extend(qr_instructions(document, scale, qr_encoder, logo_bytes))
	instructions.extend(logo_instructions(document, scale, metrics, logo_bytes))

	return LayoutResult(
		instructions=tuple(instructions),
		scale=scale,
		width=width,
		height=height,
		sections=tuple(boxes),
		overflow=tuple(overflow),
	)


#============================================
def translate_instruction(instruction: DrawInstruction, dx: float, dy: float) -> DrawInstruction:
	"""
	Offset an instruction by a device-unit vector.
	"""
	return dataclasses.replace(
		instruction,
		x=instruction.x + dx,
		y=instruction.y + dy,
		x2=instruction.x2 + dx,
		y2=instruction.y2 + dy,
	)
