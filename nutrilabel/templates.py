"""
Predefined label templates and placement presets.
"""

# Standard Library
import dataclasses

# local repo modules
import nutrilabel.config
import nutrilabel.document


config = nutrilabel.config
doc = nutrilabel.document

PRESET_INSET_MM = config.PRESET_INSET_MM
DEFAULT_TEMPLATE_ID = "fda-standard"


@dataclasses.dataclass(frozen=True)
class LabelTemplate:
	id: str
	name: str
	category: str
	regulatory: str
	layout: nutrilabel.document.LayoutSpec
	typography: nutrilabel.document.Typography
	is_default: bool = False


#============================================
def default_sections(width: float, height: float, margin: float) -> tuple[doc.Section, ...]:
	"""
	Build the standard section stack for a label size.

	Args:
		width: Label width in mm.
		height: Label height in mm.
		margin: Uniform margin in mm.

	Returns:
		Tuple of sections ordered header to footer.
	"""
	content_width = width - 2.0 * margin
	names = ("header", "branding", "nutrition", "ingredients", "allergens", "footer")
	nominal = (height - 2.0 * margin) / len(names)
	sections = []
	for order, kind in enumerate(names):
		sections.append(
			doc.Section(
				id=kind,
				type=kind,
				position=doc.Position(margin, margin + order * nominal),
				dimensions=doc.Dimensions(content_width, nominal),
				visible=True,
				order=order,
			)
		)
	return tuple(sections)


def _template(
	template_id: str,
	name: str,
	category: str,
	regulatory: str,
	size: tuple[float, float],
	margins: tuple[float, float, float, float],
	fonts: tuple[str, str],
	sizes: tuple[float, float, float, float],
	colors: tuple[str, str, str],
	line_spacing: float,
	character_spacing: float,
	is_default: bool = False,
) -> LabelTemplate:
	width, height = size
	top, right, bottom, left = margins
	layout = doc.LayoutSpec(
		orientation="portrait" if height >= width else "landscape",
		dimensions=doc.Dimensions(width, height),
		margins=doc.Margins(top=top, right=right, bottom=bottom, left=left),
		template=template_id,
		sections=default_sections(width, height, min(margins)),
	)
	typography = doc.Typography(
		primary_font=fonts[0],
		secondary_font=fonts[1],
		font_sizes=doc.FontSizes(*sizes),
		colors=doc.TypographyColors(*colors),
		line_spacing=line_spacing,
		character_spacing=character_spacing,
	)
	return LabelTemplate(
		id=template_id,
		name=name,
		category=category,
		regulatory=regulatory,
		layout=layout,
		typography=typography,
		is_default=is_default,
	)


TEMPLATES = {
	template.id: template
	for template in (
		_template(
			"fda-standard", "FDA Standard", "food", "FDA",
			(100.0, 150.0), (10.0, 10.0, 10.0, 10.0),
			("Inter", "Noto Sans Arabic"), (16.0, 14.0, 12.0, 10.0),
			("#1a1a1a", "#666666", "#22c55e"), 1.2, 0.0,
			is_default=True,
		),
		_template(
			"eu-nutrition", "EU Nutrition Label", "food", "EU",
			(85.0, 120.0), (8.0, 8.0, 8.0, 8.0),
			("Inter", "Noto Sans Arabic"), (14.0, 12.0, 10.0, 8.0),
			("#1e293b", "#64748b", "#3b82f6"), 1.1, 0.0,
		),
		_template(
			"sfda-bilingual", "SFDA Bilingual", "food", "SFDA",
			(110.0, 170.0), (12.0, 12.0, 12.0, 12.0),
			("Inter", "Cairo"), (16.0, 14.0, 12.0, 10.0),
			("#0f172a", "#475569", "#059669"), 1.3, 0.2,
		),
		_template(
			"beverage-modern", "Modern Beverage", "beverage", "FDA",
			(80.0, 200.0), (8.0, 6.0, 8.0, 6.0),
			("Montserrat", "Tajawal"), (14.0, 12.0, 10.0, 8.0),
			("#1e40af", "#6b7280", "#06b6d4"), 1.2, 0.0,
		),
		_template(
			"supplement-premium", "Premium Supplement", "supplement", "FDA",
			(120.0, 80.0), (10.0, 10.0, 10.0, 10.0),
			("Roboto", "Noto Sans Arabic"), (18.0, 14.0, 12.0, 10.0),
			("#7c2d12", "#a3a3a3", "#ea580c"), 1.1, 0.0,
		),
		_template(
			"organic-natural", "Organic & Natural", "food", "MULTI",
			(95.0, 140.0), (12.0, 8.0, 12.0, 8.0),
			("Source Sans Pro", "Amiri"), (16.0, 13.0, 11.0, 9.0),
			("#166534", "#525252", "#16a34a"), 1.25, 0.1,
		),
	)
}


#============================================
def get_template(template_id: str) -> LabelTemplate:
	"""
	Look up a template by id.

	Args:
		template_id: Template identifier.

	Returns:
		LabelTemplate. Raises KeyError for unknown ids.
	"""
	if template_id not in TEMPLATES:
		raise KeyError(f"Unknown template: {template_id}")
	return TEMPLATES[template_id]


#============================================
def new_document(template_id: str = DEFAULT_TEMPLATE_ID, **fields) -> doc.LabelDocument:
	"""
	Create a fresh document from a template.

	Args:
		template_id: Template identifier.
		fields: Extra LabelDocument fields.

	Returns:
		LabelDocument.
	"""
	template = get_template(template_id)
	if "regulatory_standard" not in fields and template.regulatory in config.REGULATORY_STANDARDS:
		fields["regulatory_standard"] = template.regulatory
	return doc.LabelDocument(layout=template.layout, typography=template.typography, **fields)


#============================================
def template_changes(template_id: str) -> dict:
	"""
	Partial update that applies a template's layout and typography.

	Args:
		template_id: Template identifier.

	Returns:
		Changes dict for document.merge_update.
	"""
	template = get_template(template_id)
	return {
		"layout": dataclasses.asdict(template.layout),
		"typography": dataclasses.asdict(template.typography),
	}


#============================================
def preset_position(
	preset: str,
	label: doc.Dimensions,
	item: doc.Dimensions,
	current: doc.Position | None = None,
) -> doc.Position:
	"""
	Compute an anchored position for a logo or QR block.

	Args:
		preset: One of top-left, top-center, top-right, center-left, center,
			center-right, bottom-left, bottom-center, bottom-right, custom.
		label: Label dimensions.
		item: Block dimensions.
		current: Position returned for "custom".

	Returns:
		Top-left position in mm.
	"""
	if preset == "custom":
		return current or doc.Position(PRESET_INSET_MM, PRESET_INSET_MM)
	vertical, _, horizontal = preset.partition("-")
	if preset == "center":
		vertical, horizontal = "center", "center"
	x_positions = {
		"left": PRESET_INSET_MM,
		"center": (label.width - item.width) / 2.0,
		"right": label.width - item.width - PRESET_INSET_MM,
	}
	y_positions = {
		"top": PRESET_INSET_MM,
		"center": (label.height - item.height) / 2.0,
		"bottom": label.height - item.height - PRESET_INSET_MM,
	}
	if horizontal not in x_positions or vertical not in y_positions:
		raise ValueError(f"Unknown position preset: {preset}")
	return doc.Position(max(0.0, x_positions[horizontal]), max(0.0, y_positions[vertical]))
