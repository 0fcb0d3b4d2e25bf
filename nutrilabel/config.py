"""
Shared configuration and constants.
"""

import dataclasses


MM_PER_INCH = 25.4
POINTS_PER_INCH = 72.0
POINTS_PER_MM = POINTS_PER_INCH / MM_PER_INCH

REGULATORY_STANDARDS = ("FDA", "EU", "SFDA", "CUSTOM")
ORIENTATIONS = ("portrait", "landscape")
SECTION_TYPES = ("header", "nutrition", "ingredients", "allergens", "footer", "branding", "qr")
QR_CONTENT_TYPES = ("url", "nutrition", "ingredients", "custom")
QR_ERROR_LEVELS = ("L", "M", "Q", "H")

FONT_SIZE_MIN = 8.0
FONT_SIZE_MAX = 32.0
OPACITY_MIN = 0.0
OPACITY_MAX = 1.0

DEFAULT_FONT_REGULAR = "Helvetica"
DEFAULT_FONT_BOLD = "Helvetica-Bold"
DEFAULT_BACKGROUND = "#ffffff"

# viewport fit
VIEWPORT_FILL = 0.8
ZOOM_LEVELS = (25, 50, 75, 100, 125, 150, 200)
DEFAULT_ZOOM = 100
DEVICE_PROFILES = {
	"desktop": (600.0, 800.0),
	"tablet": (768.0, 1024.0),
	"mobile": (320.0, 568.0),
}
DEFAULT_DEVICE = "desktop"

# layout flow, all in millimeters
SECTION_GAP_MM = 3.0
HEADING_GAP_MM = 1.5
NUTRITION_ROW_PADDING_MM = 1.0
RULE_THICKNESS_MM = 0.6
GRID_STEP_MM = 10.0
GRID_COLOR = "#e5e7eb"
GRID_LINE_MM = 0.1
RULER_TICK_MM = 2.0
RULER_COLOR = "#9ca3af"
PLACEHOLDER_FILL = "#000000"
PLACEHOLDER_FILL_ALPHA = 0.1
PLACEHOLDER_STROKE_ALPHA = 0.3
PLACEHOLDER_TEXT_ALPHA = 0.5
PLACEHOLDER_TEXT_PT = 12.0
QR_PLACEHOLDER_CELLS = 10
PRESET_INSET_MM = 10.0

# export
RESOLUTIONS = (150, 300, 600)
DEFAULT_RESOLUTION = 300
EXPORT_FORMATS = ("raster", "vector", "paginated-print")
RASTER_TYPES = ("png", "jpg")
COLOR_PROFILES = ("rgb", "cmyk")
PAPER_SIZES = {
	"a4": (210.0, 297.0),
	"letter": (216.0, 279.0),
	"a3": (297.0, 420.0),
}
SHEET_MARGIN_MM = 10.0
BLEED_MM = 3.0
CUT_LINE_COLOR = "#b3b3b3"
CUT_LINE_MM = 0.1
JPEG_QUALITY = 90

# session scheduling, seconds
AUTOSAVE_DELAY = 2.0
VALIDATION_DELAY = 0.3


@dataclasses.dataclass(frozen=True)
class ExportOptions:
	format: str = "paginated-print"
	raster_type: str = "png"
	resolution: int = DEFAULT_RESOLUTION
	paper: str | None = "a4"
	labels_per_sheet: int | None = None
	copies: int | None = None
	include_cut_lines: bool = True
	include_bleed: bool = False
	color_profile: str = "rgb"

	def __post_init__(self) -> None:
		if self.format not in EXPORT_FORMATS:
			raise ValueError(f"Unknown export format: {self.format}")
		if self.raster_type not in RASTER_TYPES:
			raise ValueError(f"Unknown raster type: {self.raster_type}")
		if self.resolution not in RESOLUTIONS:
			raise ValueError(f"Resolution must be one of {RESOLUTIONS}, got {self.resolution}")
		if self.paper is not None and self.paper not in PAPER_SIZES:
			raise ValueError(f"Unknown paper preset: {self.paper}")
		if self.color_profile not in COLOR_PROFILES:
			raise ValueError(f"Unknown color profile: {self.color_profile}")
		if self.copies is not None and self.copies < 1:
			raise ValueError("copies must be at least 1")


@dataclasses.dataclass(frozen=True)
class SheetLayout:
	paper_width: float
	paper_height: float
	tile_width: float
	tile_height: float
	labels_per_sheet: int
	max_labels_per_sheet: int
	slots: tuple[tuple[float, float], ...]


#============================================
def mm_to_points(value: float) -> float:
	"""
	Convert millimeters to points.

	Args:
		value: Millimeters value.

	Returns:
		Points value.
	"""
	return value * POINTS_PER_MM


#============================================
def points_to_mm(value: float) -> float:
	"""
	Convert points to millimeters.

	Args:
		value: Points value.

	Returns:
		Millimeters value.
	"""
	return value / POINTS_PER_MM


#============================================
def pixels_per_mm(dpi: int) -> float:
	"""
	Device pixels per millimeter at a resolution.

	Args:
		dpi: Dots per inch.

	Returns:
		Pixels per millimeter.
	"""
	return dpi / MM_PER_INCH
