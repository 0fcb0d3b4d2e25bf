"""
Draw instruction dispatch onto drawing surfaces.

The renderer holds no business logic: it walks an instruction tuple in
order and forwards each entry to the matching surface primitive.
"""

# Standard Library
import dataclasses

# local repo modules
import nutrilabel.layout


DrawInstruction = nutrilabel.layout.DrawInstruction


class Surface:
	"""
	Drawing primitives every output surface implements.

	Coordinates are device units with a top-left origin. Text positions
	are baselines anchored according to align.
	"""

	def fill_rect(self, x: float, y: float, width: float, height: float, color: str, alpha: float = 1.0) -> None:
		raise NotImplementedError

	def stroke_rect(
		self,
		x: float,
		y: float,
		width: float,
		height: float,
		color: str,
		line_width: float,
		alpha: float = 1.0,
	) -> None:
		raise NotImplementedError

	def draw_line(
		self,
		x1: float,
		y1: float,
		x2: float,
		y2: float,
		color: str,
		line_width: float,
		alpha: float = 1.0,
	) -> None:
		raise NotImplementedError

	def draw_text(
		self,
		text: str,
		x: float,
		y: float,
		font_name: str,
		font_size: float,
		color: str,
		bold: bool = False,
		direction: str = "ltr",
		align: str = "left",
		alpha: float = 1.0,
		character_spacing: float = 0.0,
	) -> None:
		raise NotImplementedError

	def draw_image(self, data: bytes, x: float, y: float, width: float, height: float, alpha: float = 1.0) -> None:
		raise NotImplementedError


@dataclasses.dataclass
class SurfaceCall:
	name: str
	args: dict


class RecordingSurface(Surface):
	"""
	Surface that records every call, for inspection in tests and previews.
	"""

	def __init__(self) -> None:
		self.calls: list[SurfaceCall] = []

	def _record(self, name: str, **kwargs) -> None:
		self.calls.append(SurfaceCall(name=name, args=kwargs))

	def fill_rect(self, x, y, width, height, color, alpha=1.0):
		self._record("fill_rect", x=x, y=y, width=width, height=height, color=color, alpha=alpha)

	def stroke_rect(self, x, y, width, height, color, line_width, alpha=1.0):
		self._record(
			"stroke_rect", x=x, y=y, width=width, height=height,
			color=color, line_width=line_width, alpha=alpha,
		)

	def draw_line(self, x1, y1, x2, y2, color, line_width, alpha=1.0):
		self._record("draw_line", x1=x1, y1=y1, x2=x2, y2=y2, color=color, line_width=line_width, alpha=alpha)

	def draw_text(
		self, text, x, y, font_name, font_size, color,
		bold=False, direction="ltr", align="left", alpha=1.0, character_spacing=0.0,
	):
		self._record(
			"draw_text", text=text, x=x, y=y, font_name=font_name, font_size=font_size,
			color=color, bold=bold, direction=direction, align=align, alpha=alpha,
			character_spacing=character_spacing,
		)

	def draw_image(self, data, x, y, width, height, alpha=1.0):
		self._record("draw_image", data=data, x=x, y=y, width=width, height=height, alpha=alpha)

	def names(self) -> list[str]:
		return [call.name for call in self.calls]


#============================================
def render_instruction(instruction: DrawInstruction, surface: Surface) -> None:
	"""
	Forward one draw instruction to a surface.

	Args:
		instruction: Draw instruction.
		surface: Target surface.
	"""
	kind = instruction.kind
	if kind == "fill_rect":
		surface.fill_rect(
			instruction.x, instruction.y, instruction.width, instruction.height,
			instruction.color, instruction.alpha,
		)
	elif kind == "stroke_rect":
		surface.stroke_rect(
			instruction.x, instruction.y, instruction.width, instruction.height,
			instruction.color, instruction.line_width, instruction.alpha,
		)
	elif kind == "line":
		surface.draw_line(
			instruction.x, instruction.y, instruction.x2, instruction.y2,
			instruction.color, instruction.line_width, instruction.alpha,
		)
	elif kind == "text":
		surface.draw_text(
			instruction.text,
			instruction.x,
			instruction.y,
			instruction.font_name,
			instruction.font_size,
			instruction.color,
			bold=instruction.bold,
			direction=instruction.direction,
			align=instruction.align,
			alpha=instruction.alpha,
			character_spacing=instruction.character_spacing,
		)
	elif kind == "image":
		surface.draw_image(
			instruction.image_data, instruction.x, instruction.y,
			instruction.width, instruction.height, instruction.alpha,
		)
	else:
		raise ValueError(f"Unknown draw instruction kind: {kind}")


#============================================
def render_instructions(instructions, surface: Surface) -> Surface:
	"""
	Replay instructions onto a surface in order.

	Args:
		instructions: Iterable of DrawInstruction.
		surface: Target surface.

	Returns:
		The surface, for chaining.
	"""
	for instruction in instructions:
		render_instruction(instruction, surface)
	return surface


#============================================
def parse_hex_color(value: str) -> tuple[float, float, float]:
	"""
	Parse a hex color string into RGB floats.

	Accepts "#RGB" and "#RRGGBB"; anything else is black.

	Args:
		value: Color string like "#AABBCC".

	Returns:
		Tuple of (r, g, b) in 0.0-1.0 range.
	"""
	if not value or not value.startswith("#"):
		return (0.0, 0.0, 0.0)
	digits = value[1:]
	if len(digits) == 3:
		digits = "".join(char * 2 for char in digits)
	if len(digits) != 6:
		return (0.0, 0.0, 0.0)
	try:
		red = int(digits[0:2], 16) / 255.0
		green = int(digits[2:4], 16) / 255.0
		blue = int(digits[4:6], 16) / 255.0
	except ValueError:
		return (0.0, 0.0, 0.0)
	return (red, green, blue)


#============================================
def color_to_rgba(value: str, alpha: float = 1.0) -> tuple[int, int, int, int]:
	"""
	Convert a hex color and alpha into 8-bit RGBA.
	"""
	red, green, blue = parse_hex_color(value)
	return (
		int(round(red * 255)),
		int(round(green * 255)),
		int(round(blue * 255)),
		int(round(max(0.0, min(1.0, alpha)) * 255)),
	)


#============================================
def sanitize_token(value: str) -> str:
	"""
	Sanitize a string for filenames.

	Args:
		value: Input string.

	Returns:
		Sanitized string.
	"""
	result: list[str] = []
	for char in value:
		if char.isascii() and char.isalnum():
			result.append(char)
		else:
			result.append("_")
	sanitized = "".join(result).strip("_")
	while "__" in sanitized:
		sanitized = sanitized.replace("__", "_")
	if not sanitized:
		return "label"
	return sanitized
