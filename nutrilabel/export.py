"""
Export pipeline: sheet geometry, output encoders and the export manager.

Every export starts with validation. A document with validation errors is
never handed to an encoder. Encoders consume draw instructions only and
return the finished artifact as bytes.
"""

# Standard Library
import asyncio
import copy
import dataclasses
import io
import logging
import math
import os
import pathlib
import tempfile

# PIP3 modules
import PIL.PngImagePlugin
import pypdf
import reportlab.pdfgen.canvas

# local repo modules
import nutrilabel.config
import nutrilabel.document
import nutrilabel.errors
import nutrilabel.layout
import nutrilabel.metrics
import nutrilabel.render
import nutrilabel.surfaces
import nutrilabel.validation


logger = logging.getLogger(__name__)

config = nutrilabel.config
ExportOptions = config.ExportOptions
SheetLayout = config.SheetLayout
LabelDocument = nutrilabel.document.LabelDocument
DrawInstruction = nutrilabel.layout.DrawInstruction
LayoutResult = nutrilabel.layout.LayoutResult
ValidationResult = nutrilabel.validation.ValidationResult
ExportBusyError = nutrilabel.errors.ExportBusyError

PAPER_SIZES = config.PAPER_SIZES
SHEET_MARGIN_MM = config.SHEET_MARGIN_MM
BLEED_MM = config.BLEED_MM
CUT_LINE_COLOR = config.CUT_LINE_COLOR
CUT_LINE_MM = config.CUT_LINE_MM
JPEG_QUALITY = config.JPEG_QUALITY
PAPER_BACKGROUND = "#ffffff"
PRODUCER = "nutrilabel"

FORMAT_EXTENSIONS = {
	"vector": "svg",
	"paginated-print": "pdf",
}


@dataclasses.dataclass(frozen=True)
class ExportJob:
	layout: LayoutResult
	sheet: SheetLayout
	options: ExportOptions
	title: str
	background: str
	bleed: float
	total_labels: int
	fonts: dict | None = None

	@property
	def pages(self) -> int:
		return max(1, math.ceil(self.total_labels / self.sheet.labels_per_sheet))


@dataclasses.dataclass(frozen=True)
class ExportResult:
	status: str
	filename: str = ""
	data: bytes | None = None
	reason: str = ""
	validation: ValidationResult | None = None
	pages: int = 0


#============================================
def compute_max_labels_per_sheet(
	label: tuple[float, float],
	paper: tuple[float, float],
	margin: float = SHEET_MARGIN_MM,
) -> int:
	"""
	How many labels fit on one sheet of paper.

	Args:
		label: Label (width, height) in mm.
		paper: Paper (width, height) in mm.
		margin: Margin on every paper edge in mm.

	Returns:
		Label count, never below 1.
	"""
	label_width, label_height = label
	paper_width, paper_height = paper
	columns = math.floor((paper_width - 2.0 * margin) / label_width)
	rows = math.floor((paper_height - 2.0 * margin) / label_height)
	return max(1, max(0, columns) * max(0, rows))


#============================================
def compute_sheet_slots(
	tile: tuple[float, float],
	paper: tuple[float, float],
	count: int,
	margin: float = SHEET_MARGIN_MM,
) -> tuple[tuple[float, float], ...]:
	"""
	Top-left slot origins on a sheet, row by row.

	Args:
		tile: Tile (width, height) in mm.
		paper: Paper (width, height) in mm.
		count: Number of slots wanted.
		margin: Paper margin in mm.

	Returns:
		Tuple of (x, y) origins in mm.
	"""
	tile_width, tile_height = tile
	paper_width, paper_height = paper
	columns = math.floor((paper_width - 2.0 * margin) / tile_width)
	rows = math.floor((paper_height - 2.0 * margin) / tile_height)
	if columns < 1 or rows < 1:
		# oversized label, center the single slot
		x = max(0.0, (paper_width - tile_width) / 2.0)
		y = max(0.0, (paper_height - tile_height) / 2.0)
		return ((x, y),)
	slots: list[tuple[float, float]] = []
	for index in range(min(count, columns * rows)):
		row = index // columns
		col = index % columns
		slots.append((margin + col * tile_width, margin + row * tile_height))
	return tuple(slots)


#============================================
def resolve_paper(document: LabelDocument, options: ExportOptions) -> tuple[float, float] | None:
	"""
	Paper size for an export, rotated for landscape documents.
	"""
	if options.paper is None:
		return None
	width, height = PAPER_SIZES[options.paper]
	if document.layout.orientation == "landscape":
		return (height, width)
	return (width, height)


#============================================
def build_sheet_layout(document: LabelDocument, options: ExportOptions) -> SheetLayout:
	"""
	Compute the sheet geometry for an export.

	Without a paper preset the sheet is the label itself. A requested
	labels_per_sheet is clamped to [1, max].

	Args:
		document: Label document.
		options: Export options.

	Returns:
		SheetLayout in millimeters.
	"""
	bleed = BLEED_MM if options.include_bleed else 0.0
	dims = document.layout.dimensions
	tile = (dims.width + 2.0 * bleed, dims.height + 2.0 * bleed)
	paper = resolve_paper(document, options)
	if paper is None:
		return SheetLayout(
			paper_width=tile[0],
			paper_height=tile[1],
			tile_width=tile[0],
			tile_height=tile[1],
			labels_per_sheet=1,
			max_labels_per_sheet=1,
			slots=((0.0, 0.0),),
		)
	maximum = compute_max_labels_per_sheet(tile, paper)
	requested = options.labels_per_sheet if options.labels_per_sheet is not None else maximum
	per_sheet = int(nutrilabel.document.clamp(requested, 1, maximum))
	return SheetLayout(
		paper_width=paper[0],
		paper_height=paper[1],
		tile_width=tile[0],
		tile_height=tile[1],
		labels_per_sheet=per_sheet,
		max_labels_per_sheet=maximum,
		slots=compute_sheet_slots(tile, paper, per_sheet),
	)


#============================================
def output_filename(document: LabelDocument, options: ExportOptions) -> str:
	"""
	Artifact filename from the primary product name.

	Args:
		document: Label document.
		options: Export options.

	Returns:
		Filename like "Greek_Yogurt.png".
	"""
	base = nutrilabel.render.sanitize_token(document.product_name.primary.strip())
	extension = FORMAT_EXTENSIONS.get(options.format, options.raster_type)
	return f"{base}.{extension}"


#============================================
def export_scale(options: ExportOptions) -> float:
	"""
	Device units per millimeter for a format.

	Raster exports use pixels at the chosen resolution, vector exports use
	millimeters directly, print exports use PDF points.
	"""
	if options.format == "raster":
		return config.pixels_per_mm(options.resolution)
	if options.format == "vector":
		return 1.0
	return config.POINTS_PER_MM


#============================================
def tile_instructions(job: ExportJob) -> list[DrawInstruction]:
	"""
	Instructions for one tile: bleed fill plus the label offset by bleed.
	"""
	scale = job.layout.scale
	instructions: list[DrawInstruction] = []
	offset = job.bleed * scale
	if job.bleed > 0:
		instructions.append(
			DrawInstruction(
				kind="fill_rect", x=0.0, y=0.0,
				width=job.sheet.tile_width * scale, height=job.sheet.tile_height * scale,
				color=job.background, layer="background",
			)
		)
	for instruction in job.layout.instructions:
		instructions.append(nutrilabel.layout.translate_instruction(instruction, offset, offset))
	return instructions


#============================================
def cut_line_instructions(job: ExportJob, count: int) -> list[DrawInstruction]:
	"""
	Trim-box outlines for the first count slots of a sheet.
	"""
	scale = job.layout.scale
	layout = job.layout
	instructions: list[DrawInstruction] = []
	for slot_x, slot_y in job.sheet.slots[:count]:
		instructions.append(
			DrawInstruction(
				kind="stroke_rect",
				x=(slot_x + job.bleed) * scale,
				y=(slot_y + job.bleed) * scale,
				width=layout.width,
				height=layout.height,
				color=CUT_LINE_COLOR,
				line_width=CUT_LINE_MM * scale,
				layer="cut_lines",
			)
		)
	return instructions


#============================================
def sheet_instructions(job: ExportJob) -> list[DrawInstruction]:
	"""
	Flatten the first sheet into one instruction list.

	Args:
		job: Export job.

	Returns:
		Paper fill, each tile translated to its slot, then cut lines.
	"""
	scale = job.layout.scale
	count = min(job.sheet.labels_per_sheet, job.total_labels)
	instructions = [
		DrawInstruction(
			kind="fill_rect", x=0.0, y=0.0,
			width=job.sheet.paper_width * scale, height=job.sheet.paper_height * scale,
			color=PAPER_BACKGROUND, layer="background",
		)
	]
	tile = tile_instructions(job)
	for slot_x, slot_y in job.sheet.slots[:count]:
		dx = slot_x * scale
		dy = slot_y * scale
		instructions.extend(nutrilabel.layout.translate_instruction(item, dx, dy) for item in tile)
	if job.options.include_cut_lines:
		instructions.extend(cut_line_instructions(job, count))
	return instructions


#============================================
def encode_raster(job: ExportJob) -> bytes:
	"""
	Encode the first sheet as PNG or JPEG with Pillow.

	Args:
		job: Export job at pixel scale.

	Returns:
		Image bytes with DPI and color profile metadata.
	"""
	scale = job.layout.scale
	width = int(round(job.sheet.paper_width * scale))
	height = int(round(job.sheet.paper_height * scale))
	surface = nutrilabel.surfaces.PillowSurface(width, height, background=PAPER_BACKGROUND, fonts=job.fonts)
	nutrilabel.render.render_instructions(sheet_instructions(job), surface)
	dpi = (job.options.resolution, job.options.resolution)
	profile = job.options.color_profile
	buffer = io.BytesIO()
	if job.options.raster_type == "png":
		info = PIL.PngImagePlugin.PngInfo()
		info.add_text("Title", job.title)
		info.add_text("ColorProfile", profile)
		surface.image.save(buffer, format="PNG", dpi=dpi, pnginfo=info)
	else:
		comment = f"{job.title}; color-profile={profile}"
		surface.image.convert("RGB").save(
			buffer, format="JPEG", dpi=dpi, quality=JPEG_QUALITY, comment=comment.encode("utf-8"),
		)
	return buffer.getvalue()


#============================================
def encode_vector(job: ExportJob) -> bytes:
	"""
	Encode the first sheet as SVG sized in millimeters.
	"""
	scale = job.layout.scale
	paper_width = job.sheet.paper_width
	paper_height = job.sheet.paper_height
	surface = nutrilabel.surfaces.SvgSurface(
		paper_width * scale,
		paper_height * scale,
		physical_size=(f"{paper_width}mm", f"{paper_height}mm"),
		title=job.title,
		description=f"color-profile: {job.options.color_profile}",
	)
	nutrilabel.render.render_instructions(sheet_instructions(job), surface)
	return surface.to_bytes()


#============================================
def render_tile_pdf(job: ExportJob) -> bytes:
	"""
	Render one label tile to a single-page PDF.

	Args:
		job: Export job at point scale.

	Returns:
		PDF bytes.
	"""
	width = config.mm_to_points(job.sheet.tile_width)
	height = config.mm_to_points(job.sheet.tile_height)
	buffer = io.BytesIO()
	pdf = reportlab.pdfgen.canvas.Canvas(buffer, pagesize=(width, height))
	surface = nutrilabel.surfaces.ReportLabSurface(pdf, height)
	nutrilabel.render.render_instructions(tile_instructions(job), surface)
	pdf.showPage()
	pdf.save()
	return buffer.getvalue()


#============================================
def build_cut_line_overlay(job: ExportJob, count: int) -> pypdf.PageObject:
	"""
	Build a PDF overlay page with trim outlines for count slots.

	Args:
		job: Export job.
		count: Filled slots on the page.

	Returns:
		PDF page object.
	"""
	width = config.mm_to_points(job.sheet.paper_width)
	height = config.mm_to_points(job.sheet.paper_height)
	buffer = io.BytesIO()
	pdf = reportlab.pdfgen.canvas.Canvas(buffer, pagesize=(width, height))
	surface = nutrilabel.surfaces.ReportLabSurface(pdf, height)
	nutrilabel.render.render_instructions(cut_line_instructions(job, count), surface)
	pdf.save()
	buffer.seek(0)
	reader = pypdf.PdfReader(buffer)
	return reader.pages[0]


#============================================
def encode_print(job: ExportJob) -> bytes:
	"""
	Impose label tiles onto paper pages with pypdf.

	Args:
		job: Export job at point scale.

	Returns:
		Multi-page PDF bytes.
	"""
	reader = pypdf.PdfReader(io.BytesIO(render_tile_pdf(job)))
	tile_page = reader.pages[0]
	page_width = config.mm_to_points(job.sheet.paper_width)
	page_height = config.mm_to_points(job.sheet.paper_height)
	tile_height = config.mm_to_points(job.sheet.tile_height)
	per_sheet = job.sheet.labels_per_sheet

	writer = pypdf.PdfWriter()
	page_counts: list[int] = []
	for index in range(job.total_labels):
		if index % per_sheet == 0:
			page = pypdf.PageObject.create_blank_page(width=page_width, height=page_height)
			writer.add_page(page)
			page_counts.append(0)
		page = writer.pages[-1]
		slot_x, slot_y = job.sheet.slots[index % per_sheet]
		cell_x = config.mm_to_points(slot_x)
		cell_y = page_height - config.mm_to_points(slot_y) - tile_height
		page.merge_transformed_page(tile_page, pypdf.Transformation().translate(cell_x, cell_y))
		page_counts[-1] += 1

	if job.options.include_cut_lines:
		overlays: dict[int, pypdf.PageObject] = {}
		for page, count in zip(writer.pages, page_counts):
			if count not in overlays:
				overlays[count] = build_cut_line_overlay(job, count)
			page.merge_page(overlays[count])

	writer.add_metadata(
		{
			"/Title": job.title,
			"/Producer": PRODUCER,
			"/ColorProfile": job.options.color_profile,
		}
	)
	buffer = io.BytesIO()
	writer.write(buffer)
	return buffer.getvalue()


ENCODERS = {
	"raster": encode_raster,
	"vector": encode_vector,
	"paginated-print": encode_print,
}


#============================================
def export_document(
	document: LabelDocument,
	options: ExportOptions,
	metrics=None,
	asset_store=None,
	qr_encoder=None,
	encoders: dict | None = None,
	registry: nutrilabel.validation.RuleRegistry | None = None,
	fonts: dict | None = None,
) -> ExportResult:
	"""
	Validate, lay out and encode a document.

	Args:
		document: Label document.
		options: Export options.
		metrics: Font metrics provider.
		asset_store: Logo asset store.
		qr_encoder: QR image encoder.
		encoders: Format to encoder callable map, defaults to ENCODERS.
		registry: Validation rule registry.
		fonts: Font name to TrueType path map for raster output.

	Returns:
		ExportResult with status completed, blocked or failed.
	"""
	validation = nutrilabel.validation.validate(document, registry)
	filename = output_filename(document, options)
	if not validation.export_allowed:
		reasons = "; ".join(issue.message for issue in validation.errors)
		logger.info("Export of %s blocked: %s", filename, reasons)
		return ExportResult(
			status="blocked",
			filename=filename,
			reason=f"Validation failed: {reasons}",
			validation=validation,
		)

	encoder_map = ENCODERS if encoders is None else encoders
	encoder = encoder_map.get(options.format)
	if encoder is None:
		return ExportResult(
			status="failed",
			filename=filename,
			reason=f"No encoder for format {options.format}",
			validation=validation,
		)
	if metrics is None:
		metrics = nutrilabel.metrics.FontMetrics()

	sheet = build_sheet_layout(document, options)
	total = options.copies if options.copies is not None else sheet.labels_per_sheet
	try:
		layout = nutrilabel.layout.build_layout(
			document,
			export_scale(options),
			metrics=metrics,
			asset_store=asset_store,
			qr_encoder=qr_encoder,
		)
		job = ExportJob(
			layout=layout,
			sheet=sheet,
			options=options,
			title=document.product_name.primary.strip() or "label",
			background=document.branding.colors.background,
			bleed=BLEED_MM if options.include_bleed else 0.0,
			total_labels=total,
			fonts=fonts,
		)
		data = encoder(job)
	except Exception as error:
		logger.exception("Export of %s failed", filename)
		return ExportResult(status="failed", filename=filename, reason=str(error) or type(error).__name__, validation=validation)

	logger.info("Exported %s (%d bytes)", filename, len(data))
	return ExportResult(
		status="completed",
		filename=filename,
		data=data,
		validation=validation,
		pages=job.pages if options.format == "paginated-print" else 1,
	)


#============================================
def write_artifact(result: ExportResult, output_dir: pathlib.Path) -> pathlib.Path:
	"""
	Write a completed export atomically.

	Args:
		result: Completed ExportResult.
		output_dir: Destination directory.

	Returns:
		Final artifact path.
	"""
	if result.status != "completed" or result.data is None:
		raise ValueError(f"Cannot write an export with status {result.status}")
	output_dir = pathlib.Path(output_dir)
	output_dir.mkdir(parents=True, exist_ok=True)
	target = output_dir / result.filename
	handle = tempfile.NamedTemporaryFile(dir=output_dir, prefix=".export-", delete=False)
	try:
		with handle:
			handle.write(result.data)
		os.replace(handle.name, target)
	except OSError:
		pathlib.Path(handle.name).unlink(missing_ok=True)
		raise
	return target


class ExportManager:
	"""
	Runs one export at a time as an asyncio task.

	The encoder runs in a worker thread against a deep copy of the
	document, so later edits never leak into an export in flight.
	A timed out or cancelled export resolves at once, but the manager
	stays busy until its worker thread returns.
	"""

	def __init__(
		self,
		metrics=None,
		asset_store=None,
		qr_encoder=None,
		encoders: dict | None = None,
		timeout: float | None = None,
		fonts: dict | None = None,
	) -> None:
		self.metrics = metrics
		self.asset_store = asset_store
		self.qr_encoder = qr_encoder
		self.encoders = encoders
		self.timeout = timeout
		self.fonts = fonts
		self._task: asyncio.Task | None = None
		self._worker: asyncio.Task | None = None

	@property
	def busy(self) -> bool:
		# a timed out or cancelled export keeps its worker thread until it returns
		if self._task is not None and not self._task.done():
			return True
		return self._worker is not None and not self._worker.done()

	def start(self, document: LabelDocument, options: ExportOptions) -> asyncio.Task:
		"""
		Schedule an export on the running event loop.

		Args:
			document: Document to export; a snapshot is taken now.
			options: Export options.

		Returns:
			Task resolving to an ExportResult.
		"""
		if self.busy:
			raise ExportBusyError("An export is already in progress")
		snapshot = copy.deepcopy(document)
		loop = asyncio.get_running_loop()
		self._worker = loop.create_task(asyncio.to_thread(
			export_document,
			snapshot,
			options,
			self.metrics,
			self.asset_store,
			self.qr_encoder,
			self.encoders,
			None,
			self.fonts,
		))
		self._task = loop.create_task(self._run(self._worker, output_filename(snapshot, options)))
		return self._task

	async def export(self, document: LabelDocument, options: ExportOptions) -> ExportResult:
		return await self.start(document, options)

	def cancel(self) -> bool:
		if self._task is None or self._task.done():
			return False
		return self._task.cancel()

	async def _run(self, worker: asyncio.Task, filename: str) -> ExportResult:
		# shield so a timeout or cancel leaves the worker task tracking the thread
		work = asyncio.shield(worker)
		try:
			if self.timeout is None:
				return await work
			return await asyncio.wait_for(work, self.timeout)
		except asyncio.TimeoutError:
			logger.warning("Export of %s timed out after %ss", filename, self.timeout)
			return ExportResult(status="failed", filename=filename, reason=f"Export timed out after {self.timeout}s")
		except asyncio.CancelledError:
			logger.info("Export of %s cancelled", filename)
			return ExportResult(status="cancelled", filename=filename, reason="Export cancelled")
