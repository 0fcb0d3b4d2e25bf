"""
Preview controller: zoom, device profile and overlay state.

Every transition synchronously runs validate, layout and render and then
publishes a new immutable frame. A transition requested while a render is
running is not re-entered; the latest requested state is rendered once
the current pass finishes.
"""

# Standard Library
import dataclasses
import logging

# local repo modules
import nutrilabel.config
import nutrilabel.document
import nutrilabel.layout
import nutrilabel.metrics
import nutrilabel.render
import nutrilabel.validation


logger = logging.getLogger(__name__)

config = nutrilabel.config
LabelDocument = nutrilabel.document.LabelDocument
LayoutResult = nutrilabel.layout.LayoutResult
ValidationResult = nutrilabel.validation.ValidationResult

ZOOM_LEVELS = config.ZOOM_LEVELS
DEFAULT_ZOOM = config.DEFAULT_ZOOM
DEVICE_PROFILES = config.DEVICE_PROFILES
DEFAULT_DEVICE = config.DEFAULT_DEVICE
MODES = ("editing", "previewing")


@dataclasses.dataclass(frozen=True)
class PreviewState:
	mode: str = "editing"
	zoom: int = DEFAULT_ZOOM
	device: str = DEFAULT_DEVICE
	show_grid: bool = False
	show_rulers: bool = False


@dataclasses.dataclass(frozen=True)
class PreviewFrame:
	state: PreviewState
	layout: LayoutResult
	validation: ValidationResult
	surface: object

	@property
	def instructions(self) -> tuple:
		return self.layout.instructions


#============================================
def snap_zoom(value: float) -> int:
	"""
	Nearest zoom level, ties going to the smaller level.

	Args:
		value: Requested zoom percent.

	Returns:
		Member of ZOOM_LEVELS.
	"""
	return min(ZOOM_LEVELS, key=lambda level: (abs(level - value), level))


class PreviewController:
	"""
	State machine driving the recompute pipeline for one document.
	"""

	def __init__(
		self,
		document: LabelDocument,
		metrics=None,
		asset_store=None,
		qr_encoder=None,
		surface_factory=None,
		registry: nutrilabel.validation.RuleRegistry | None = None,
		viewports: dict[str, tuple[float, float]] | None = None,
	) -> None:
		self.document = document
		self.metrics = metrics or nutrilabel.metrics.FontMetrics()
		self.asset_store = asset_store
		self.qr_encoder = qr_encoder
		self.surface_factory = surface_factory or (lambda width, height: nutrilabel.render.RecordingSurface())
		self.registry = registry
		self.viewports = dict(DEVICE_PROFILES)
		if viewports:
			self.viewports.update(viewports)
		self.state = PreviewState()
		self.frame: PreviewFrame | None = None
		self.render_count = 0
		self._listeners: list = []
		self._rendering = False
		self._pending = False
		self.recompute()

	@property
	def instructions(self) -> tuple:
		if self.frame is None:
			return ()
		return self.frame.instructions

	@property
	def validation(self) -> ValidationResult | None:
		if self.frame is None:
			return None
		return self.frame.validation

	def subscribe(self, callback) -> None:
		"""
		Register a callable receiving each published PreviewFrame.
		"""
		self._listeners.append(callback)

	def viewport(self) -> tuple[float, float]:
		return self.viewports[self.state.device]

	#============================================
	def zoom_in(self) -> None:
		index = ZOOM_LEVELS.index(self.state.zoom)
		self._transition(zoom=ZOOM_LEVELS[min(index + 1, len(ZOOM_LEVELS) - 1)])

	def zoom_out(self) -> None:
		index = ZOOM_LEVELS.index(self.state.zoom)
		self._transition(zoom=ZOOM_LEVELS[max(index - 1, 0)])

	def set_zoom(self, value: float) -> None:
		self._transition(zoom=snap_zoom(value))

	def set_device(self, device: str) -> None:
		if device not in self.viewports:
			raise ValueError(f"Unknown device profile: {device}")
		self._transition(device=device)

	def toggle_grid(self) -> None:
		self._transition(show_grid=not self.state.show_grid)

	def toggle_rulers(self) -> None:
		self._transition(show_rulers=not self.state.show_rulers)

	def set_mode(self, mode: str) -> None:
		if mode not in MODES:
			raise ValueError(f"Unknown preview mode: {mode}")
		self._transition(mode=mode)

	def set_document(self, document: LabelDocument) -> None:
		self.document = document
		self._transition()

	def _transition(self, **changes) -> None:
		self.state = dataclasses.replace(self.state, **changes)
		self.recompute()

	#============================================
	def recompute(self) -> None:
		"""
		Run validate, layout and render for the current state.

		A call made while a pass is running only marks the controller
		dirty; the running pass loops until no newer state is pending.
		"""
		if self._rendering:
			self._pending = True
			return
		self._rendering = True
		try:
			self._pending = True
			while self._pending:
				self._pending = False
				frame = self._render_frame(self.document, self.state)
				if self._pending:
					# superseded by a newer request during this pass
					continue
				self.frame = frame
				self.render_count += 1
				for callback in list(self._listeners):
					callback(frame)
		finally:
			self._rendering = False

	def _render_frame(self, document: LabelDocument, state: PreviewState) -> PreviewFrame:
		dims = document.layout.dimensions
		scale = nutrilabel.layout.compute_scale((dims.width, dims.height), self.viewport(), state.zoom)
		validation = nutrilabel.validation.validate(document, self.registry)
		# overlays are an editing aid only
		editing = state.mode == "editing"
		layout = nutrilabel.layout.build_layout(
			document,
			scale,
			metrics=self.metrics,
			asset_store=self.asset_store,
			qr_encoder=self.qr_encoder,
			show_grid=editing and state.show_grid,
			show_rulers=editing and state.show_rulers,
		)
		surface = self.surface_factory(layout.width, layout.height)
		nutrilabel.render.render_instructions(layout.instructions, surface)
		if layout.overflow:
			logger.info("Sections overflow the label: %s", ", ".join(layout.overflow))
		return PreviewFrame(state=state, layout=layout, validation=validation, surface=surface)
