"""
Label document model, invariants and dict codec.
"""

# Standard Library
import copy
import dataclasses
import datetime
import uuid

# local repo modules
import nutrilabel.config
import nutrilabel.errors


config = nutrilabel.config
DocumentInvariantError = nutrilabel.errors.DocumentInvariantError

FONT_SIZE_MIN = config.FONT_SIZE_MIN
FONT_SIZE_MAX = config.FONT_SIZE_MAX
OPACITY_MIN = config.OPACITY_MIN
OPACITY_MAX = config.OPACITY_MAX


#============================================
def utc_now() -> datetime.datetime:
	"""
	Current time as an aware UTC datetime.
	"""
	return datetime.datetime.now(datetime.timezone.utc)


#============================================
def clamp(value: float, low: float, high: float) -> float:
	"""
	Clamp a value into a closed range.

	Args:
		value: Input value.
		low: Lower bound.
		high: Upper bound.

	Returns:
		Clamped value.
	"""
	return max(low, min(high, float(value)))


@dataclasses.dataclass(frozen=True)
class Position:
	x: float = 0.0
	y: float = 0.0


@dataclasses.dataclass(frozen=True)
class Dimensions:
	width: float
	height: float


@dataclasses.dataclass(frozen=True)
class Margins:
	top: float = 10.0
	right: float = 10.0
	bottom: float = 10.0
	left: float = 10.0


@dataclasses.dataclass(frozen=True)
class BilingualText:
	primary: str = ""
	secondary: str = ""


@dataclasses.dataclass(frozen=True)
class BilingualSet:
	primary: frozenset[str] = frozenset()
	secondary: frozenset[str] = frozenset()

	def __post_init__(self) -> None:
		# unique, trimmed, no blanks
		for name in ("primary", "secondary"):
			values = frozenset(item.strip() for item in getattr(self, name) if item and item.strip())
			object.__setattr__(self, name, values)


@dataclasses.dataclass(frozen=True)
class NutritionFact:
	name: str
	amount: float
	unit: str
	daily_value_percent: float | None = None


@dataclasses.dataclass(frozen=True)
class Section:
	id: str
	type: str
	position: Position = Position()
	dimensions: Dimensions = Dimensions(0.0, 0.0)
	visible: bool = True
	order: int = 0

	def __post_init__(self) -> None:
		if self.type not in config.SECTION_TYPES:
			raise DocumentInvariantError(f"sections.{self.id}", f"unknown section type {self.type!r}")


@dataclasses.dataclass(frozen=True)
class LayoutSpec:
	orientation: str
	dimensions: Dimensions
	margins: Margins
	template: str
	sections: tuple[Section, ...] = ()


@dataclasses.dataclass(frozen=True)
class FontSizes:
	heading: float = 16.0
	subheading: float = 14.0
	body: float = 12.0
	small: float = 10.0

	def __post_init__(self) -> None:
		for field in dataclasses.fields(self):
			value = clamp(getattr(self, field.name), FONT_SIZE_MIN, FONT_SIZE_MAX)
			object.__setattr__(self, field.name, value)


@dataclasses.dataclass(frozen=True)
class TypographyColors:
	primary: str = "#1a1a1a"
	secondary: str = "#666666"
	accent: str = "#22c55e"


@dataclasses.dataclass(frozen=True)
class Typography:
	primary_font: str = "Inter"
	secondary_font: str = "Noto Sans Arabic"
	font_sizes: FontSizes = FontSizes()
	colors: TypographyColors = TypographyColors()
	line_spacing: float = 1.2
	character_spacing: float = 0.0


@dataclasses.dataclass(frozen=True)
class BrandingColors:
	primary: str = "#22c55e"
	secondary: str = "#666666"
	accent: str = "#ff6b35"
	background: str = "#ffffff"


@dataclasses.dataclass(frozen=True)
class Logo:
	asset_ref: str
	# defaults sit at the top-left preset and fit every template extent (80 mm minimum)
	position: Position = Position(10.0, 10.0)
	dimensions: Dimensions = Dimensions(30.0, 20.0)
	opacity: float = 1.0

	def __post_init__(self) -> None:
		object.__setattr__(self, "opacity", clamp(self.opacity, OPACITY_MIN, OPACITY_MAX))


@dataclasses.dataclass(frozen=True)
class Branding:
	colors: BrandingColors = BrandingColors()
	logo: Logo | None = None


@dataclasses.dataclass(frozen=True)
class QrSpec:
	content: str = ""
	content_type: str = "url"
	size: float = 25.0
	position: Position = Position(10.0, 10.0)
	error_correction: str = "M"
	color: str = "#000000"
	background_color: str = "#ffffff"
	logo_embedded: bool = False

	def __post_init__(self) -> None:
		if self.content_type not in config.QR_CONTENT_TYPES:
			raise DocumentInvariantError("qr.content_type", f"unknown content type {self.content_type!r}")
		if self.error_correction not in config.QR_ERROR_LEVELS:
			raise DocumentInvariantError("qr.error_correction", f"unknown level {self.error_correction!r}")
		if self.size <= 0:
			raise DocumentInvariantError("qr.size", "must be positive")


@dataclasses.dataclass(frozen=True)
class LabelDocument:
	layout: LayoutSpec
	id: str = dataclasses.field(default_factory=lambda: str(uuid.uuid4()))
	product_name: BilingualText = BilingualText()
	brand_name: str = ""
	net_weight: str = ""
	regulatory_standard: str = "FDA"
	serving_size: str = "100g"
	servings_per_container: str = "1"
	calories: float = 0.0
	nutrition: tuple[NutritionFact, ...] = ()
	ingredients: BilingualText = BilingualText()
	allergens: BilingualSet = BilingualSet()
	typography: Typography = Typography()
	branding: Branding = Branding()
	qr: QrSpec | None = None
	created_at: datetime.datetime = dataclasses.field(default_factory=utc_now)
	updated_at: datetime.datetime = dataclasses.field(default_factory=utc_now)

	def __post_init__(self) -> None:
		object.__setattr__(self, "nutrition", tuple(self.nutrition))
		check_invariants(self)


#============================================
def rect_inside(
	x: float,
	y: float,
	width: float,
	height: float,
	bounds: Dimensions,
) -> bool:
	"""
	Check that a rectangle lies fully within document bounds.

	Args:
		x: Left edge in mm.
		y: Top edge in mm.
		width: Width in mm.
		height: Height in mm.
		bounds: Document dimensions.

	Returns:
		True if the rectangle is inside.
	"""
	return (
		x >= 0.0
		and y >= 0.0
		and x + width <= bounds.width
		and y + height <= bounds.height
	)


#============================================
def check_invariants(document: LabelDocument) -> None:
	"""
	Raise DocumentInvariantError for the first broken invariant.

	Args:
		document: Document to check.
	"""
	layout = document.layout
	dims = layout.dimensions
	if document.regulatory_standard not in config.REGULATORY_STANDARDS:
		raise DocumentInvariantError("regulatory_standard", f"unknown standard {document.regulatory_standard!r}")
	if layout.orientation not in config.ORIENTATIONS:
		raise DocumentInvariantError("layout.orientation", f"unknown orientation {layout.orientation!r}")
	if dims.width <= 0 or dims.height <= 0:
		raise DocumentInvariantError("layout.dimensions", "width and height must be positive")

	margins = layout.margins
	for name, limit in (
		("top", dims.height),
		("bottom", dims.height),
		("left", dims.width),
		("right", dims.width),
	):
		value = getattr(margins, name)
		if value < 0 or value >= limit / 2.0:
			raise DocumentInvariantError(
				f"layout.margins.{name}",
				f"{value} must be >= 0 and < half of {limit}",
			)

	orders = [section.order for section in layout.sections]
	if len(orders) != len(set(orders)):
		raise DocumentInvariantError("layout.sections", "section order values must be unique")

	qr = document.qr
	if qr is not None and not rect_inside(qr.position.x, qr.position.y, qr.size, qr.size, dims):
		raise DocumentInvariantError("qr.position", "QR code must lie inside the label")

	logo = document.branding.logo
	if logo is not None:
		if logo.dimensions.width <= 0 or logo.dimensions.height <= 0:
			raise DocumentInvariantError("branding.logo.dimensions", "must be positive")
		if not rect_inside(
			logo.position.x,
			logo.position.y,
			logo.dimensions.width,
			logo.dimensions.height,
			dims,
		):
			raise DocumentInvariantError("branding.logo.position", "logo must lie inside the label")


#============================================
def sorted_sections(layout: LayoutSpec, visible_only: bool = True) -> list[Section]:
	"""
	Sections in ascending order.

	Args:
		layout: Layout spec.
		visible_only: Skip hidden sections.

	Returns:
		Sorted sections.
	"""
	sections = [section for section in layout.sections if section.visible or not visible_only]
	return sorted(sections, key=lambda section: section.order)


#============================================
def document_to_dict(document: LabelDocument) -> dict:
	"""
	Convert a document into JSON-compatible data.

	Args:
		document: LabelDocument instance.

	Returns:
		Nested dict with sorted allergen lists and ISO timestamps.
	"""
	data = dataclasses.asdict(document)
	data["allergens"] = {
		"primary": sorted(document.allergens.primary),
		"secondary": sorted(document.allergens.secondary),
	}
	data["nutrition"] = [dict(item) for item in data["nutrition"]]
	data["layout"]["sections"] = [dict(item) for item in data["layout"]["sections"]]
	data["created_at"] = document.created_at.isoformat()
	data["updated_at"] = document.updated_at.isoformat()
	return data


#============================================
def parse_timestamp(value) -> datetime.datetime:
	"""
	Parse an ISO timestamp or pass a datetime through.
	"""
	if value is None:
		return utc_now()
	if isinstance(value, datetime.datetime):
		return value
	return datetime.datetime.fromisoformat(value)


def _position(data: dict | None, default: Position) -> Position:
	if not data:
		return default
	return Position(x=float(data.get("x", default.x)), y=float(data.get("y", default.y)))


def _dimensions(data: dict | None, default: Dimensions) -> Dimensions:
	if not data:
		return default
	return Dimensions(
		width=float(data.get("width", default.width)),
		height=float(data.get("height", default.height)),
	)


def _record(cls, data: dict, field: str, convert=None):
	names = {item.name for item in dataclasses.fields(cls)}
	unknown = sorted(set(data) - names)
	if unknown:
		raise DocumentInvariantError(field, f"unknown keys {', '.join(unknown)}")
	if convert is not None:
		data = {key: convert(value) for key, value in data.items()}
	return cls(**data)


def _section(data: dict) -> Section:
	return Section(
		id=str(data["id"]),
		type=data["type"],
		position=_position(data.get("position"), Position()),
		dimensions=_dimensions(data.get("dimensions"), Dimensions(0.0, 0.0)),
		visible=bool(data.get("visible", True)),
		order=int(data.get("order", 0)),
	)


def _fact(data: dict) -> NutritionFact:
	daily_value = data.get("daily_value_percent")
	return NutritionFact(
		name=str(data["name"]),
		amount=float(data.get("amount", 0.0)),
		unit=str(data.get("unit", "")),
		daily_value_percent=None if daily_value is None else float(daily_value),
	)


#============================================
def document_from_dict(data: dict) -> LabelDocument:
	"""
	Build a document from JSON-compatible data.

	Missing optional keys take the model defaults. Invariants are checked
	and out-of-range opacity and font sizes are clamped.

	Args:
		data: Nested dict as produced by document_to_dict.

	Returns:
		LabelDocument instance.
	"""
	layout_data = data["layout"]
	margins_data = layout_data.get("margins") or {}
	layout = LayoutSpec(
		orientation=layout_data.get("orientation", "portrait"),
		dimensions=_dimensions(layout_data.get("dimensions"), Dimensions(100.0, 150.0)),
		margins=_record(Margins, margins_data, "layout.margins", float),
		template=layout_data.get("template", "custom"),
		sections=tuple(_section(item) for item in layout_data.get("sections", [])),
	)

	typography_data = data.get("typography") or {}
	typography = Typography(
		primary_font=typography_data.get("primary_font", Typography.primary_font),
		secondary_font=typography_data.get("secondary_font", Typography.secondary_font),
		font_sizes=_record(FontSizes, typography_data.get("font_sizes") or {}, "typography.font_sizes", float),
		colors=_record(TypographyColors, typography_data.get("colors") or {}, "typography.colors"),
		line_spacing=float(typography_data.get("line_spacing", Typography.line_spacing)),
		character_spacing=float(typography_data.get("character_spacing", Typography.character_spacing)),
	)

	branding_data = data.get("branding") or {}
	logo = None
	logo_data = branding_data.get("logo")
	if logo_data:
		logo = Logo(
			asset_ref=str(logo_data["asset_ref"]),
			position=_position(logo_data.get("position"), Logo.position),
			dimensions=_dimensions(logo_data.get("dimensions"), Logo.dimensions),
			opacity=float(logo_data.get("opacity", 1.0)),
		)
	branding = Branding(
		colors=_record(BrandingColors, branding_data.get("colors") or {}, "branding.colors"),
		logo=logo,
	)

	qr = None
	qr_data = data.get("qr")
	if qr_data:
		qr = QrSpec(
			content=str(qr_data.get("content", "")),
			content_type=qr_data.get("content_type", "url"),
			size=float(qr_data.get("size", QrSpec.size)),
			position=_position(qr_data.get("position"), QrSpec.position),
			error_correction=qr_data.get("error_correction", "M"),
			color=qr_data.get("color", QrSpec.color),
			background_color=qr_data.get("background_color", QrSpec.background_color),
			logo_embedded=bool(qr_data.get("logo_embedded", False)),
		)

	allergens_data = data.get("allergens") or {}
	kwargs = {}
	if data.get("id"):
		kwargs["id"] = str(data["id"])
	document = LabelDocument(
		layout=layout,
		product_name=_record(BilingualText, data.get("product_name") or {}, "product_name"),
		brand_name=data.get("brand_name", ""),
		net_weight=data.get("net_weight", ""),
		regulatory_standard=data.get("regulatory_standard", "FDA"),
		serving_size=data.get("serving_size", "100g"),
		servings_per_container=str(data.get("servings_per_container", "1")),
		calories=float(data.get("calories", 0.0)),
		nutrition=tuple(_fact(item) for item in data.get("nutrition", [])),
		ingredients=_record(BilingualText, data.get("ingredients") or {}, "ingredients"),
		allergens=BilingualSet(
			primary=frozenset(allergens_data.get("primary", [])),
			secondary=frozenset(allergens_data.get("secondary", [])),
		),
		typography=typography,
		branding=branding,
		qr=qr,
		created_at=parse_timestamp(data.get("created_at")),
		updated_at=parse_timestamp(data.get("updated_at")),
		**kwargs,
	)
	return document


#============================================
def deep_merge(base: dict, changes: dict) -> dict:
	"""
	Merge nested changes into a copy of base.

	Dicts merge key by key, everything else (lists included) replaces.
	A None value for a key that holds a dict clears it.

	Args:
		base: Original data.
		changes: Partial update.

	Returns:
		Merged dict.
	"""
	merged = copy.deepcopy(base)
	for key, value in changes.items():
		current = merged.get(key)
		if isinstance(value, dict) and isinstance(current, dict):
			merged[key] = deep_merge(current, value)
		else:
			merged[key] = copy.deepcopy(value)
	return merged


#============================================
def merge_update(
	document: LabelDocument,
	changes: dict,
	now: datetime.datetime | None = None,
) -> LabelDocument:
	"""
	Apply a partial update and stamp updated_at.

	Args:
		document: Current document.
		changes: Nested partial update in document_to_dict shape.
		now: Timestamp for updated_at.

	Returns:
		New LabelDocument. Raises DocumentInvariantError and leaves the
		original untouched if the result breaks an invariant.
	"""
	if "id" in changes or "created_at" in changes:
		raise DocumentInvariantError("id", "identity fields cannot be updated")
	merged = deep_merge(document_to_dict(document), changes)
	merged["updated_at"] = (now or utc_now()).isoformat()
	return document_from_dict(merged)
