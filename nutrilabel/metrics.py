"""
Deterministic font metrics providers.
"""

# Standard Library
import logging

# PIP3 modules
import reportlab.pdfbase.pdfmetrics

# local repo modules
import nutrilabel.config


logger = logging.getLogger(__name__)

DEFAULT_FONT_REGULAR = nutrilabel.config.DEFAULT_FONT_REGULAR
DEFAULT_FONT_BOLD = nutrilabel.config.DEFAULT_FONT_BOLD

FONT_FAMILIES = {
	"helvetica": ("Helvetica", "Helvetica-Bold"),
	"arial": ("Helvetica", "Helvetica-Bold"),
	"sans-serif": ("Helvetica", "Helvetica-Bold"),
	"times": ("Times-Roman", "Times-Bold"),
	"times-roman": ("Times-Roman", "Times-Bold"),
	"times new roman": ("Times-Roman", "Times-Bold"),
	"serif": ("Times-Roman", "Times-Bold"),
	"courier": ("Courier", "Courier-Bold"),
	"courier new": ("Courier", "Courier-Bold"),
	"monospace": ("Courier", "Courier-Bold"),
}


class FontMetrics:
	"""
	Text measurement from ReportLab's built-in Type 1 font metrics.

	Font names outside the known families fall back to the Helvetica
	metrics table. The fallback is logged once per name and never raises.
	"""

	def __init__(self) -> None:
		self._warned: set[str] = set()

	def resolve(self, font_name: str, bold: bool = False) -> str:
		"""
		Map a document font name to a ReportLab font name.

		Args:
			font_name: Font name from the typography spec.
			bold: Bold weight flag.

		Returns:
			ReportLab standard font name.
		"""
		key = (font_name or "").strip().lower()
		family = FONT_FAMILIES.get(key)
		if family is None:
			if key not in self._warned:
				self._warned.add(key)
				logger.warning("No metrics for font %r, using %s", font_name, DEFAULT_FONT_REGULAR)
			family = (DEFAULT_FONT_REGULAR, DEFAULT_FONT_BOLD)
		return family[1] if bold else family[0]

	def measure(
		self,
		text: str,
		font_name: str,
		font_size: float,
		bold: bool = False,
		character_spacing: float = 0.0,
	) -> float:
		"""
		Measure the advance width of a text run.

		Args:
			text: Text run.
			font_name: Document font name.
			font_size: Font size in device units.
			bold: Bold weight flag.
			character_spacing: Extra advance per character in device units.

		Returns:
			Width in device units.
		"""
		if not text:
			return 0.0
		rl_name = self.resolve(font_name, bold)
		width = reportlab.pdfbase.pdfmetrics.stringWidth(text, rl_name, font_size)
		return width + character_spacing * len(text)

	def ascent(self, font_name: str, font_size: float, bold: bool = False) -> float:
		rl_name = self.resolve(font_name, bold)
		return reportlab.pdfbase.pdfmetrics.getAscent(rl_name) * font_size / 1000.0

	def descent(self, font_name: str, font_size: float, bold: bool = False) -> float:
		rl_name = self.resolve(font_name, bold)
		return abs(reportlab.pdfbase.pdfmetrics.getDescent(rl_name)) * font_size / 1000.0


class FixedAdvanceMetrics:
	"""
	Every character advances by a fixed fraction of the font size.

	Used for headless previews and tests where exact glyph widths do not
	matter but reproducibility does.
	"""

	def __init__(self, advance: float = 0.5, ascent_ratio: float = 0.8) -> None:
		self.advance = advance
		self.ascent_ratio = ascent_ratio

	def resolve(self, font_name: str, bold: bool = False) -> str:
		return DEFAULT_FONT_BOLD if bold else DEFAULT_FONT_REGULAR

	def measure(
		self,
		text: str,
		font_name: str,
		font_size: float,
		bold: bool = False,
		character_spacing: float = 0.0,
	) -> float:
		return len(text) * (font_size * self.advance + character_spacing)

	def ascent(self, font_name: str, font_size: float, bold: bool = False) -> float:
		return font_size * self.ascent_ratio

	def descent(self, font_name: str, font_size: float, bold: bool = False) -> float:
		return font_size * (1.0 - self.ascent_ratio)
