import asyncio
import io
import threading

import defusedxml.ElementTree
import fitz
import PIL.Image
import pypdf
import pytest

import nutrilabel.config
import nutrilabel.document
import nutrilabel.errors
import nutrilabel.export
import nutrilabel.layout
import nutrilabel.metrics


export = nutrilabel.export
ExportOptions = nutrilabel.config.ExportOptions


#============================================
def fast_metrics() -> nutrilabel.metrics.FixedAdvanceMetrics:
	return nutrilabel.metrics.FixedAdvanceMetrics()


def make_job(document, options: ExportOptions, total: int) -> export.ExportJob:
	layout = nutrilabel.layout.build_layout(document, 1.0, metrics=fast_metrics())
	return export.ExportJob(
		layout=layout,
		sheet=export.build_sheet_layout(document, options),
		options=options,
		title="Greek Yogurt",
		background="#ffffff",
		bleed=0.0,
		total_labels=total,
	)


#============================================
@pytest.mark.parametrize(
	"label, paper, margin, expected",
	[
		((100.0, 150.0), (210.0, 297.0), 10.0, 1),
		((50.0, 30.0), (210.0, 297.0), 10.0, 27),
		((95.0, 138.5), (210.0, 297.0), 10.0, 4),
		((190.0, 277.0), (210.0, 297.0), 10.0, 1),
		((1.0, 1.0), (210.0, 297.0), 10.0, 52630),
		((65.0, 25.0), (215.9, 279.4), 10.0, 30),
		((105.0, 148.5), (210.0, 297.0), 0.0, 4),
		((300.0, 100.0), (210.0, 297.0), 10.0, 1),
		((100.0, 400.0), (210.0, 297.0), 10.0, 1),
		((300.0, 400.0), (210.0, 297.0), 10.0, 1),
	],
)
def test_labels_per_sheet_capacity(label, paper, margin, expected) -> None:
	assert export.compute_max_labels_per_sheet(label, paper, margin) == expected


#============================================
def test_labels_per_sheet_never_below_one() -> None:
	for width in (0.5, 10.0, 95.0, 190.0, 190.1, 250.0, 1000.0):
		for height in (0.5, 10.0, 138.5, 277.0, 277.1, 350.0, 1000.0):
			count = export.compute_max_labels_per_sheet((width, height), (210.0, 297.0))
			assert count >= 1, (width, height)
			if width > 190.0 or height > 277.0:
				assert count == 1, (width, height)


#============================================
def test_landscape_label_rotates_paper(document_factory) -> None:
	document = document_factory("supplement-premium")
	assert document.layout.orientation == "landscape"
	sheet = export.build_sheet_layout(document, ExportOptions())
	assert (sheet.paper_width, sheet.paper_height) == (297.0, 210.0)
	assert sheet.max_labels_per_sheet == 4
	assert sheet.labels_per_sheet == 4


#============================================
def test_requested_count_is_clamped(document_factory) -> None:
	document = document_factory("eu-nutrition")
	assert export.build_sheet_layout(document, ExportOptions(labels_per_sheet=50)).labels_per_sheet == 4
	assert export.build_sheet_layout(document, ExportOptions(labels_per_sheet=0)).labels_per_sheet == 1
	assert export.build_sheet_layout(document, ExportOptions(labels_per_sheet=3)).labels_per_sheet == 3


#============================================
def test_slots_stay_inside_printable_area(document_factory) -> None:
	"""
	Slots fill row by row from the top-left margin.
	"""
	document = document_factory("eu-nutrition")
	sheet = export.build_sheet_layout(document, ExportOptions())
	assert sheet.slots == ((10.0, 10.0), (95.0, 10.0), (10.0, 130.0), (95.0, 130.0))
	margin = nutrilabel.config.SHEET_MARGIN_MM
	for x, y in sheet.slots:
		assert x + sheet.tile_width <= sheet.paper_width - margin
		assert y + sheet.tile_height <= sheet.paper_height - margin


#============================================
def test_oversized_label_gets_centered_slot() -> None:
	slots = export.compute_sheet_slots((300.0, 100.0), (210.0, 297.0), 4)
	assert slots == ((0.0, 98.5),)


#============================================
def test_bleed_grows_the_tile(document) -> None:
	sheet = export.build_sheet_layout(document, ExportOptions(include_bleed=True))
	assert (sheet.tile_width, sheet.tile_height) == (106.0, 156.0)

	bare = export.build_sheet_layout(document, ExportOptions(paper=None, include_bleed=True))
	assert (bare.paper_width, bare.paper_height) == (106.0, 156.0)
	assert bare.slots == ((0.0, 0.0),)


#============================================
def test_output_filenames(document) -> None:
	assert export.output_filename(document, ExportOptions()) == "Greek_Yogurt.pdf"
	assert export.output_filename(document, ExportOptions(format="vector")) == "Greek_Yogurt.svg"
	assert export.output_filename(document, ExportOptions(format="raster", raster_type="jpg")) == "Greek_Yogurt.jpg"


#============================================
def test_export_options_reject_bad_values() -> None:
	with pytest.raises(ValueError):
		ExportOptions(format="gif")
	with pytest.raises(ValueError):
		ExportOptions(resolution=72)
	with pytest.raises(ValueError):
		ExportOptions(paper="tabloid")
	with pytest.raises(ValueError):
		ExportOptions(copies=0)


#============================================
def test_cut_lines_follow_filled_slots(document_factory) -> None:
	document = document_factory("eu-nutrition")
	job = make_job(document, ExportOptions(), total=3)
	cut_lines = [item for item in export.sheet_instructions(job) if item.layer == "cut_lines"]
	assert len(cut_lines) == 3
	assert (cut_lines[1].x, cut_lines[1].y) == (95.0, 10.0)
	assert (cut_lines[1].width, cut_lines[1].height) == (85.0, 120.0)

	quiet = make_job(document, ExportOptions(include_cut_lines=False), total=3)
	assert not [item for item in export.sheet_instructions(quiet) if item.layer == "cut_lines"]


#============================================
def test_blocked_export_never_reaches_encoder(document_factory) -> None:
	calls = []

	def spy(job):
		calls.append(job)
		return b""

	document = document_factory(product_name=nutrilabel.document.BilingualText("", ""))
	result = export.export_document(document, ExportOptions(), metrics=fast_metrics(), encoders={"paginated-print": spy})
	assert result.status == "blocked"
	assert result.reason.startswith("Validation failed:")
	assert result.data is None
	assert calls == []


#============================================
def test_encoder_failure_is_reported(document) -> None:
	def broken(job):
		raise RuntimeError("disk on fire")

	result = export.export_document(document, ExportOptions(), metrics=fast_metrics(), encoders={"paginated-print": broken})
	assert result.status == "failed"
	assert result.reason == "disk on fire"

	missing = export.export_document(document, ExportOptions(), metrics=fast_metrics(), encoders={})
	assert missing.status == "failed"


#============================================
def test_print_export_paginates_copies(document_factory) -> None:
	"""
	Six copies at four per sheet make two pages.
	"""
	document = document_factory("eu-nutrition")
	options = ExportOptions(copies=6, color_profile="cmyk")
	result = export.export_document(document, options)
	assert result.status == "completed"
	assert result.pages == 2
	assert result.data.startswith(b"%PDF")

	reader = pypdf.PdfReader(io.BytesIO(result.data))
	assert len(reader.pages) == 2
	assert float(reader.pages[0].mediabox.width) == pytest.approx(nutrilabel.config.mm_to_points(210.0))
	assert reader.metadata["/ColorProfile"] == "cmyk"
	assert reader.metadata["/Producer"] == "nutrilabel"
	assert reader.metadata["/Title"] == "Greek Yogurt"

	with fitz.open(stream=result.data, filetype="pdf") as pdf_doc:
		assert pdf_doc[0].get_text().count("Greek Yogurt") == 4
		assert pdf_doc[1].get_text().count("Greek Yogurt") == 2


#============================================
def test_print_export_has_ink(document) -> None:
	result = export.export_document(document, ExportOptions())
	assert result.pages == 1
	with fitz.open(stream=result.data, filetype="pdf") as pdf_doc:
		pix = pdf_doc[0].get_pixmap(dpi=40)
	image = PIL.Image.frombytes("RGB", (pix.width, pix.height), pix.samples)
	assert image.convert("L").getextrema()[0] < 128


#============================================
def test_raster_export_png_metadata(document) -> None:
	options = ExportOptions(format="raster", resolution=150, paper=None)
	result = export.export_document(document, options)
	assert result.status == "completed"
	assert result.filename == "Greek_Yogurt.png"
	image = PIL.Image.open(io.BytesIO(result.data))
	assert image.format == "PNG"
	assert image.size == (591, 886)
	assert image.info["dpi"][0] == pytest.approx(150.0, abs=0.1)
	assert image.info["ColorProfile"] == "rgb"
	assert image.info["Title"] == "Greek Yogurt"


#============================================
def test_raster_export_uses_font_map(document, tmp_path, caplog) -> None:
	"""
	Mapped fonts reach the raster surface; a missing file falls back to the default face.
	"""
	missing = str(tmp_path / "missing-primary.ttf")
	fonts = {document.typography.primary_font: missing}
	options = ExportOptions(format="raster", resolution=150, paper=None)
	with caplog.at_level("WARNING", logger="nutrilabel.surfaces"):
		result = export.export_document(document, options, metrics=fast_metrics(), fonts=fonts)
	assert result.status == "completed"
	assert missing in caplog.text


#============================================
def test_raster_export_jpeg(document) -> None:
	options = ExportOptions(format="raster", raster_type="jpg", resolution=150, paper=None, color_profile="cmyk")
	result = export.export_document(document, options, metrics=fast_metrics())
	image = PIL.Image.open(io.BytesIO(result.data))
	assert image.format == "JPEG"
	assert image.mode == "RGB"
	assert image.info["dpi"] == (150, 150)
	assert image.info["comment"] == b"Greek Yogurt; color-profile=cmyk"


#============================================
def test_vector_export_keeps_millimeters(document) -> None:
	result = export.export_document(document, ExportOptions(format="vector", paper=None))
	root = defusedxml.ElementTree.fromstring(result.data)
	assert root.attrib["width"] == "100.0mm"
	assert root.attrib["height"] == "150.0mm"
	texts = [element.text for element in root.iter("{http://www.w3.org/2000/svg}text")]
	assert "Greek Yogurt" in texts
	assert "زبادي يوناني" in texts


#============================================
def test_write_artifact_is_atomic(tmp_path, document) -> None:
	result = export.export_document(document, ExportOptions(format="vector", paper=None), metrics=fast_metrics())
	path = export.write_artifact(result, tmp_path / "out")
	assert path.name == "Greek_Yogurt.svg"
	assert path.read_bytes() == result.data
	assert [item.name for item in path.parent.iterdir()] == ["Greek_Yogurt.svg"]

	with pytest.raises(ValueError):
		export.write_artifact(export.ExportResult(status="blocked"), tmp_path)


#============================================
def gated_encoders(gate: threading.Event) -> dict:
	def slow(job):
		gate.wait(5)
		return b"%PDF-gated"
	return {"paginated-print": slow}


async def wait_until_idle(manager: export.ExportManager) -> None:
	for _ in range(500):
		if not manager.busy:
			return
		await asyncio.sleep(0.01)
	raise AssertionError("export worker never finished")


#============================================
def test_export_manager_runs_one_export_at_a_time(document) -> None:
	gate = threading.Event()
	manager = export.ExportManager(metrics=fast_metrics(), encoders=gated_encoders(gate))

	async def scenario():
		task = manager.start(document, ExportOptions())
		assert manager.busy
		with pytest.raises(nutrilabel.errors.ExportBusyError):
			manager.start(document, ExportOptions())
		gate.set()
		return await task

	result = asyncio.run(scenario())
	assert result.status == "completed"
	assert result.data == b"%PDF-gated"
	assert not manager.busy


#============================================
def test_export_manager_timeout(document) -> None:
	gate = threading.Event()
	manager = export.ExportManager(metrics=fast_metrics(), encoders=gated_encoders(gate), timeout=0.05)

	async def scenario():
		result = await manager.export(document, ExportOptions())
		gate.set()
		await wait_until_idle(manager)
		return result

	result = asyncio.run(scenario())
	assert result.status == "failed"
	assert "timed out" in result.reason


#============================================
def test_export_manager_cancel(document) -> None:
	gate = threading.Event()
	manager = export.ExportManager(metrics=fast_metrics(), encoders=gated_encoders(gate))

	async def scenario():
		task = manager.start(document, ExportOptions())
		await asyncio.sleep(0.05)
		assert manager.cancel()
		result = await task
		gate.set()
		await wait_until_idle(manager)
		return result

	result = asyncio.run(scenario())
	assert result.status == "cancelled"
	assert not manager.cancel()


#============================================
def test_export_manager_stays_busy_until_worker_returns(document) -> None:
	"""
	A timed out export frees the caller, not the worker thread.
	"""
	gate = threading.Event()
	manager = export.ExportManager(metrics=fast_metrics(), encoders=gated_encoders(gate), timeout=0.05)

	async def scenario():
		first = await manager.export(document, ExportOptions())
		assert first.status == "failed"
		assert manager.busy
		assert not manager.cancel()
		with pytest.raises(nutrilabel.errors.ExportBusyError):
			manager.start(document, ExportOptions())
		gate.set()
		await wait_until_idle(manager)
		second = await manager.export(document, ExportOptions())
		return first, second

	first, second = asyncio.run(scenario())
	assert "timed out" in first.reason
	assert second.status == "completed"
	assert second.data == b"%PDF-gated"
	assert not manager.busy
